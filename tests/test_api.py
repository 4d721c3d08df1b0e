"""
HTTP surface: routing, actor headers, error mapping and ETag / If-Match handling.
Run from project root: python -m pytest tests/test_api.py -v
"""
import unittest
import uuid

from fastapi.testclient import TestClient

from main import app


def _headers(user_id, role, company_id=None, **extra):
    headers = {"X-User-Id": user_id, "X-User-Role": role}
    if company_id:
        headers["X-Company-Id"] = company_id
    headers.update(extra)
    return headers


class TestApi(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._client_cm = TestClient(app)
        cls.client = cls._client_cm.__enter__()

    @classmethod
    def tearDownClass(cls):
        cls._client_cm.__exit__(None, None, None)

    def setUp(self):
        suffix = uuid.uuid4().hex[:8]
        self.issuer = _headers(f"issuer-{suffix}", "ISSUER", f"company-{suffix}")
        self.other_issuer = _headers(f"issuer-x-{suffix}", "ISSUER", f"company-x-{suffix}")
        self.advisor_id = f"ib-{suffix}"
        self.advisor = _headers(self.advisor_id, "IB_ADVISOR")
        self.regulator = _headers(f"reg-{suffix}", "CMA_REGULATOR")
        self.admin = _headers(f"admin-{suffix}", "CMA_ADMIN")

    def _create(self, **body):
        r = self.client.post("/applications", json=body, headers=self.issuer)
        self.assertEqual(r.status_code, 201, r.text)
        return r.json()

    def _fill(self, app_id, numbers):
        for n in numbers:
            r = self.client.patch(
                f"/applications/{app_id}/sections/{n}",
                json={"fieldPath": "details.summary", "value": f"Section {n} summary"},
                headers=self.issuer,
            )
            self.assertEqual(r.status_code, 200, r.text)

    def _submitted(self):
        created = self._create()
        self._fill(created["id"], range(1, 9))
        r = self.client.post(f"/applications/{created['id']}/submit", headers=self.issuer)
        self.assertEqual(r.status_code, 200, r.text)
        return r.json()

    def test_health(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok"})

    def test_missing_or_unknown_actor_is_unauthorized(self):
        self.assertEqual(self.client.get("/applications").status_code, 401)
        r = self.client.get("/applications", headers=_headers("u-1", "SUPERUSER"))
        self.assertEqual(r.status_code, 401)

    def test_create_returns_ten_sections_and_etag(self):
        created = self._create(targetAmount=5_000_000, priority="HIGH")
        self.assertEqual(created["status"], "DRAFT")
        self.assertEqual(created["currentPhase"], "DATA_COLLECTION")
        self.assertEqual(created["priority"], "HIGH")
        self.assertEqual(created["completionPercentage"], 0)
        self.assertEqual(len(created["sections"]), 10)
        self.assertEqual(created["sections"][0]["title"], "Company Identity & Legal Form")

        r = self.client.get(f"/applications/{created['id']}", headers=self.issuer)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.headers["etag"], '"1"')

    def test_regulator_cannot_create(self):
        r = self.client.post("/applications", json={}, headers=self.regulator)
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["kind"], "access_denied")

    def test_cross_company_access_denied(self):
        created = self._create()
        r = self.client.get(f"/applications/{created['id']}", headers=self.other_issuer)
        self.assertEqual(r.status_code, 403)
        listed = self.client.get("/applications", headers=self.other_issuer).json()
        self.assertNotIn(created["id"], [a["id"] for a in listed])

    def test_unknown_application_and_section(self):
        self.assertEqual(self.client.get("/applications/app-missing", headers=self.admin).status_code, 404)
        created = self._create()
        r = self.client.get(f"/applications/{created['id']}/sections/11", headers=self.issuer)
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["kind"], "not_found")

    def test_section_patch_merges_and_returns_data_keys_as_stored(self):
        created = self._create()
        url = f"/applications/{created['id']}/sections/1"
        r = self.client.patch(url, json={"fieldPath": "company_info.legal_name", "value": "Acme Plc"}, headers=self.issuer)
        self.assertEqual(r.status_code, 200, r.text)
        body = r.json()
        self.assertEqual(body["data"], {"company_info": {"legal_name": "Acme Plc"}})
        self.assertEqual(body["completionPercentage"], 100)
        self.assertEqual(body["status"], "IN_PROGRESS")
        self.assertEqual(r.headers["etag"], '"2"')

        r = self.client.patch(url, json={"fieldPath": "company_info.reg_no", "value": ""}, headers=self.issuer)
        body = r.json()
        self.assertEqual(body["completionPercentage"], 50)
        self.assertEqual(body["validationErrors"], [{"field": "company_info.reg_no", "message": "Value is required", "code": "EMPTY"}])

        app_body = self.client.get(f"/applications/{created['id']}", headers=self.issuer).json()
        self.assertEqual(app_body["completionPercentage"], 5)

    def test_invalid_field_path_is_bad_request(self):
        created = self._create()
        r = self.client.patch(
            f"/applications/{created['id']}/sections/1",
            json={"fieldPath": "a..b", "value": "x"},
            headers=self.issuer,
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["kind"], "validation_error")

    def test_stale_if_match_conflicts(self):
        created = self._create()
        url = f"/applications/{created['id']}/sections/2"
        first = self.client.patch(url, json={"fieldPath": "a", "value": "x"}, headers={**self.issuer, "If-Match": '"1"'})
        self.assertEqual(first.status_code, 200, first.text)
        r = self.client.patch(url, json={"fieldPath": "b", "value": "y"}, headers={**self.issuer, "If-Match": '"1"'})
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["kind"], "concurrency_conflict")
        self.assertEqual(r.json()["currentVersion"], 2)
        data = self.client.get(url, headers=self.issuer).json()["data"]
        self.assertEqual(data, {"a": "x"})

    def test_typing_is_acknowledged_then_flushed(self):
        created = self._create()
        url = f"/applications/{created['id']}/sections/3"
        r = self.client.patch(url, json={"fieldPath": "holders.count", "value": 12, "immediate": False}, headers=self.issuer)
        self.assertEqual(r.status_code, 202, r.text)
        self.assertEqual(r.json()["data"], {"holders": {"count": 12}})
        self.assertEqual(r.json()["pendingFields"], ["holders.count"])

        r = self.client.post(f"{url}/flush", headers=self.issuer)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual([s["state"] for s in r.json()["signals"]], ["CONFIRMED"])
        self.assertEqual(r.json()["section"]["pendingFields"], [])
        self.assertEqual(r.json()["section"]["completionPercentage"], 100)

        signals = self.client.get(f"{url}/autosave", headers=self.issuer).json()
        self.assertEqual(signals[0]["fieldPath"], "holders.count")
        self.assertEqual(signals[0]["state"], "CONFIRMED")

    def test_complete_section_and_submit_threshold(self):
        created = self._create()
        app_id = created["id"]
        self._fill(app_id, range(1, 5))
        r = self.client.post(f"/applications/{app_id}/sections/1/complete", headers=self.issuer)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["status"], "COMPLETED")

        r = self.client.post(f"/applications/{app_id}/sections/9/complete", headers=self.issuer)
        self.assertEqual(r.status_code, 400)

        r = self.client.post(f"/applications/{app_id}/submit", headers=self.issuer)
        self.assertEqual(r.status_code, 400)
        self.assertIn("40%", r.json()["detail"])
        self.assertEqual(self.client.get(f"/applications/{app_id}", headers=self.issuer).json()["status"], "DRAFT")

    def test_submit_and_review_flow(self):
        submitted = self._submitted()
        app_id = submitted["id"]
        self.assertEqual(submitted["status"], "SUBMITTED")
        self.assertRegex(submitted["applicationNumber"], r"^IPO-\d{4}-\d{4}$")

        r = self.client.post(
            f"/applications/{app_id}/review",
            json={"action": "ISSUE_QUERY", "comment": "need more docs", "riskRating": "MEDIUM", "complianceScore": 60},
            headers=self.regulator,
        )
        self.assertEqual(r.status_code, 200, r.text)
        body = r.json()
        self.assertEqual(body["application"]["status"], "QUERY_ISSUED")
        self.assertEqual(body["review"]["riskRating"], "MEDIUM")
        self.assertEqual(body["review"]["complianceScore"], 60)

        r = self.client.post(f"/applications/{app_id}/review", json={"action": "START_REVIEW"}, headers=self.regulator)
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["kind"], "state_transition_error")
        self.assertEqual(r.json()["currentStatus"], "QUERY_ISSUED")

        r = self.client.post(f"/applications/{app_id}/respond", json={"comment": "Docs attached"}, headers=self.issuer)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["status"], "UNDER_REVIEW")

        r = self.client.post(
            f"/applications/{app_id}/review",
            json={"action": "APPROVE", "comment": "Approved"},
            headers=self.regulator,
        )
        self.assertEqual(r.json()["application"]["status"], "APPROVED")
        self.assertEqual(r.json()["application"]["currentPhase"], "DECISION")

        reviews = self.client.get(f"/applications/{app_id}/reviews", headers=self.admin).json()
        self.assertEqual([rv["action"] for rv in reviews], ["ISSUE_QUERY", "APPROVE"])

    def test_review_requires_comment_and_regulator(self):
        app_id = self._submitted()["id"]
        r = self.client.post(f"/applications/{app_id}/review", json={"action": "REJECT"}, headers=self.regulator)
        self.assertEqual(r.status_code, 400)
        r = self.client.post(
            f"/applications/{app_id}/review", json={"action": "REJECT", "comment": "no"}, headers=self.issuer
        )
        self.assertEqual(r.status_code, 403)
        r = self.client.post(
            f"/applications/{app_id}/review",
            json={"action": "APPROVE", "comment": "ok", "complianceScore": 150},
            headers=self.regulator,
        )
        self.assertEqual(r.status_code, 422)

    def test_advisor_assignment(self):
        app_id = self._create()["id"]
        r = self.client.get(f"/applications/{app_id}", headers=self.advisor)
        self.assertEqual(r.status_code, 403)

        r = self.client.post(f"/applications/{app_id}/assign-ib", json={"ibAdvisorId": self.advisor_id}, headers=self.issuer)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["assignedIbAdvisorId"], self.advisor_id)

        r = self.client.patch(
            f"/applications/{app_id}/sections/4",
            json={"fieldPath": "board.chair", "value": "J. Doe"},
            headers=self.advisor,
        )
        self.assertEqual(r.status_code, 200, r.text)

        r = self.client.post(f"/applications/{app_id}/assign-ib", json={"ibAdvisorId": "ib-other"}, headers=self.advisor)
        self.assertEqual(r.status_code, 403)

        r = self.client.delete(f"/applications/{app_id}/assign-ib", headers=self.advisor)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertIsNone(r.json()["assignedIbAdvisorId"])

    def test_patch_application_fields(self):
        app_id = self._create()["id"]
        r = self.client.patch(f"/applications/{app_id}", json={"targetAmount": 750_000}, headers=self.issuer)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["targetAmount"], 750_000)
        self.assertEqual(r.headers["etag"], '"2"')

        r = self.client.patch(f"/applications/{app_id}", json={"assignedRegulatorId": "reg-1"}, headers=self.issuer)
        self.assertEqual(r.status_code, 403)
        r = self.client.patch(
            f"/applications/{app_id}", json={"priority": "LOW"}, headers={**self.issuer, "If-Match": "1"}
        )
        self.assertEqual(r.status_code, 409)
        r = self.client.patch(f"/applications/{app_id}", json={}, headers=self.issuer)
        self.assertEqual(r.status_code, 400)

    def test_internal_comments_hidden_from_issuer(self):
        app_id = self._submitted()["id"]
        r = self.client.post(
            f"/applications/{app_id}/comments",
            json={"content": "Check auditor independence", "isInternal": True},
            headers=self.regulator,
        )
        self.assertEqual(r.status_code, 201, r.text)
        r = self.client.post(
            f"/applications/{app_id}/comments",
            json={"content": "Private note", "isInternal": True},
            headers=self.issuer,
        )
        self.assertEqual(r.status_code, 403)
        r = self.client.post(
            f"/applications/{app_id}/comments",
            json={"content": "Question for the regulator", "addressedTo": "CMA_REGULATOR"},
            headers=self.issuer,
        )
        self.assertEqual(r.status_code, 403)
        r = self.client.post(
            f"/applications/{app_id}/comments",
            json={"content": "Section 2 figures updated", "sectionNumber": 2},
            headers=self.issuer,
        )
        self.assertEqual(r.status_code, 201, r.text)

        issuer_view = self.client.get(f"/applications/{app_id}/comments", headers=self.issuer).json()
        self.assertEqual([c["content"] for c in issuer_view], ["Section 2 figures updated"])
        staff_view = self.client.get(f"/applications/{app_id}/comments", headers=self.regulator).json()
        self.assertEqual(len(staff_view), 2)
        by_section = self.client.get(f"/applications/{app_id}/comments?section=2", headers=self.regulator).json()
        self.assertEqual(len(by_section), 1)

    def test_list_filters_by_status(self):
        draft_id = self._create()["id"]
        listed = self.client.get("/applications?status=DRAFT", headers=self.issuer).json()
        self.assertIn(draft_id, [a["id"] for a in listed])
        listed = self.client.get("/applications?status=SUBMITTED", headers=self.issuer).json()
        self.assertNotIn(draft_id, [a["id"] for a in listed])

    def test_section_review_stamp(self):
        app_id = self._submitted()["id"]
        r = self.client.post(f"/applications/{app_id}/sections/1/review", headers=self.regulator)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["reviewedBy"], self.regulator["X-User-Id"])
        r = self.client.post(f"/applications/{app_id}/sections/1/review", headers=self.issuer)
        self.assertEqual(r.status_code, 403)

    def test_recalculate_completion(self):
        app_id = self._create()["id"]
        self._fill(app_id, [1, 2, 3])
        r = self.client.post(f"/applications/{app_id}/recalculate-completion", headers=self.issuer)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["completionPercentage"], 30)


if __name__ == "__main__":
    unittest.main()
