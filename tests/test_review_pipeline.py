"""
Regulator actions: windows, role checks, audit rows and mirrored comments.
Run from project root: python -m pytest tests/test_review_pipeline.py -v
"""
from exceptions import AccessDeniedError, StateTransitionError, ValidationError
from schemas.enums import ApplicationStatus, ReviewAction, RiskRating
from services import application_store as store
from services.review_pipeline import approve, issue_query, perform_review, reject, start_review
from services.workflow import submit
from tests.support import ADMIN, ADVISOR, ISSUER, OTHER_REGULATOR, REGULATOR, DatabaseTestCase, fill_section


class TestReviewPipeline(DatabaseTestCase):
    async def _submitted(self):
        app = await store.create_application(self.session, ISSUER)
        for number in range(1, 9):
            await fill_section(self.session, app.id, number)
        return await submit(self.session, app.id, ISSUER)

    async def test_issue_query_records_exact_decision(self):
        app = await self._submitted()
        outcome = await issue_query(
            self.session, app.id, REGULATOR,
            comment="need more docs", risk_rating=RiskRating.MEDIUM, compliance_score=60,
        )
        self.assertEqual(outcome.application.status, ApplicationStatus.QUERY_ISSUED.value)
        decisions = await store.list_reviews(self.session, app.id, REGULATOR)
        self.assertEqual(len(decisions), 1)
        decision = decisions[0]
        self.assertEqual(decision.action, ReviewAction.ISSUE_QUERY.value)
        self.assertEqual(decision.comment, "need more docs")
        self.assertEqual(decision.risk_rating, RiskRating.MEDIUM.value)
        self.assertEqual(decision.compliance_score, 60)
        self.assertEqual(decision.reviewer_id, REGULATOR.user_id)
        self.assertEqual(decision.from_status, ApplicationStatus.SUBMITTED.value)
        self.assertEqual(decision.to_status, ApplicationStatus.QUERY_ISSUED.value)

        comments = await store.list_comments(self.session, app.id, ISSUER)
        self.assertEqual([c.content for c in comments], ["need more docs"])

    async def test_start_review_self_assigns_and_comment_is_internal(self):
        app = await self._submitted()
        outcome = await start_review(self.session, app.id, REGULATOR, comment="Picking this up")
        self.assertEqual(outcome.application.status, ApplicationStatus.UNDER_REVIEW.value)
        self.assertEqual(outcome.application.assigned_regulator_id, REGULATOR.user_id)
        self.assertEqual(await store.list_comments(self.session, app.id, ISSUER), [])
        staff_view = await store.list_comments(self.session, app.id, REGULATOR)
        self.assertTrue(staff_view[0].is_internal)

        with self.assertRaises(AccessDeniedError):
            await approve(self.session, app.id, OTHER_REGULATOR, comment="Looks fine")
        outcome = await approve(self.session, app.id, ADMIN, comment="Approved by admin")
        self.assertEqual(outcome.application.status, ApplicationStatus.APPROVED.value)

    async def test_comment_required_for_decisions(self):
        app = await self._submitted()
        for action in (ReviewAction.ISSUE_QUERY, ReviewAction.APPROVE, ReviewAction.REJECT):
            with self.assertRaises(ValidationError):
                await perform_review(self.session, app.id, REGULATOR, action, comment="   ")
        self.assertEqual(await store.list_reviews(self.session, app.id, REGULATOR), [])

    async def test_non_regulators_denied(self):
        app = await self._submitted()
        for actor in (ISSUER, ADVISOR):
            with self.assertRaises(AccessDeniedError):
                await reject(self.session, app.id, actor, comment="no")

    async def test_out_of_window_actions(self):
        draft = await store.create_application(self.session, ISSUER)
        with self.assertRaises(StateTransitionError):
            await start_review(self.session, draft.id, ADMIN)

        app = await self._submitted()
        await issue_query(self.session, app.id, REGULATOR, comment="Clarify")
        with self.assertRaises(StateTransitionError):
            await start_review(self.session, app.id, REGULATOR)
        with self.assertRaises(StateTransitionError):
            await issue_query(self.session, app.id, REGULATOR, comment="Again")

        await reject(self.session, app.id, REGULATOR, comment="Incomplete disclosure")
        for action in ReviewAction:
            with self.assertRaises(StateTransitionError):
                await perform_review(self.session, app.id, ADMIN, action, comment="late")
        decisions = await store.list_reviews(self.session, app.id, ADMIN)
        self.assertEqual(
            [d.action for d in decisions],
            [ReviewAction.ISSUE_QUERY.value, ReviewAction.REJECT.value],
        )

    async def test_compliance_score_range(self):
        app = await self._submitted()
        with self.assertRaises(ValidationError):
            await issue_query(self.session, app.id, REGULATOR, comment="x", compliance_score=101)
