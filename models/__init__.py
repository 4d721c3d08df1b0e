from models.application import Application, ApplicationNumberCounter, Section
from models.comment import Comment
from models.review import ReviewDecision

__all__ = [
    "Application",
    "ApplicationNumberCounter",
    "Comment",
    "ReviewDecision",
    "Section",
]
