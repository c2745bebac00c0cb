from __future__ import annotations

import io
import json
import unittest
from unittest import mock

from docx import Document
from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook

from copy_engine.config import settings
from copy_engine.main import DOCX_MEDIA_TYPE, XLSX_MEDIA_TYPE, app
from copy_engine.services.qa import QAEngine
from copy_engine.services.rate_limiter import RateLimiter

VALID_REPORT = {
    "issues": [],
    "summary": {"totalIssues": 0, "errors": 0, "warnings": 0, "suggestions": 0},
}


def docx_bytes(*fields: tuple, section: str = "Hero") -> bytes:
    doc = Document()
    doc.add_heading(section, level=1)
    for name, content in fields:
        doc.add_paragraph(f"{name}: {content}")
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def xlsx_bytes(rows: list) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Copy Template"
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class FakeLLMClient:
    def __init__(self, response: str = "", chunks: tuple = ()):
        self.response = response
        self.chunks = chunks
        self.user_prompts: list = []

    async def generate_text(self, system_prompt, user_prompt, temperature=0.2, max_tokens=None):
        self.user_prompts.append(user_prompt)
        return self.response

    async def stream_chat(self, messages, temperature=0.7, max_tokens=None):
        for chunk in self.chunks:
            yield chunk


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)
        self.services = app.state.services

    def use_llm(self, llm: FakeLLMClient) -> None:
        self.services.qa_engine = QAEngine(llm, prompts=self.services.prompts)


class ReferenceEndpointsTests(ApiTestCase):
    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["prompts_version"], "1.0")

    def test_catalog(self) -> None:
        body = self.client.get("/api/v1/catalog").json()
        names = [d["name"] for d in body["deliverables"]]
        self.assertIn("Product Detail Page", names)

    def test_markets(self) -> None:
        body = self.client.get("/api/v1/markets").json()
        europe = [m["code"] for m in body["regions"]["Europe"]]
        self.assertIn("fr-FR", europe)
        self.assertGreater(body["total"], 0)


class TemplateEndpointsTests(ApiTestCase):
    def test_excel_template(self) -> None:
        response = self.client.post("/api/v1/templates/excel", json={
            "project_name": "Spring",
            "deliverables": ["Email"],
            "markets": ["fr-FR", "es-MX", "en-US"],
            "lead_market": "en-US",
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], XLSX_MEDIA_TYPE)
        self.assertIn("Spring_Localization_Template.xlsx", response.headers["content-disposition"])

        ws = load_workbook(io.BytesIO(response.content))["Copy Template"]
        self.assertEqual([c.value for c in ws[1]], ["Deliverable", "Name", "en-US", "es-MX", "fr-FR"])

    def test_excel_template_lead_outside_selection(self) -> None:
        response = self.client.post("/api/v1/templates/excel", json={
            "deliverables": ["Email"],
            "markets": ["fr-FR"],
            "lead_market": "en-US",
        })
        self.assertEqual(response.status_code, 400)

    def test_unknown_deliverable(self) -> None:
        response = self.client.post("/api/v1/templates/excel", json={
            "deliverables": ["Billboard"],
            "markets": ["en-US"],
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn("Billboard", response.json()["detail"])

    def test_word_template(self) -> None:
        response = self.client.post("/api/v1/templates/word", json={
            "deliverables": ["Landing Page"],
            "market": "es-MX",
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], DOCX_MEDIA_TYPE)
        self.assertIn("Marketing_Copy_es-MX.docx", response.headers["content-disposition"])

        texts = [p.text for p in Document(io.BytesIO(response.content)).paragraphs]
        self.assertIn("Landing Hero", texts)
        self.assertIn("Headline: [Headline translation needed]", texts)


class ImportEndpointsTests(ApiTestCase):
    def test_import_word_with_one_corrupt_file(self) -> None:
        files = [
            ("files", ("Copy_fr-FR.docx", docx_bytes(("Headline", "Salut")), DOCX_MEDIA_TYPE)),
            ("files", ("Copy_de-DE.docx", b"corrupt", DOCX_MEDIA_TYPE)),
            ("files", ("Copy_en-US.docx", docx_bytes(("Headline", "Hi"), ("Button", "Go")), DOCX_MEDIA_TYPE)),
        ]
        response = self.client.post("/api/v1/import/word", files=files, data={"lead_market": "en-US"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["kind"], "word")
        self.assertEqual(body["markets"], ["en-US", "fr-FR"])
        self.assertEqual([f["filename"] for f in body["failures"]], ["Copy_de-DE.docx"])
        self.assertEqual(len(body["documents"]), 2)

        cta = body["rows"][1]
        self.assertEqual((cta["deliverable"], cta["field"]), ("Hero", "CTA"))
        self.assertEqual(cta["content"], {"en-US": "Go", "fr-FR": ""})
        self.assertEqual(cta["missing"], ["fr-FR"])
        self.assertIn(
            {"row": 3, "deliverable": "Hero", "field": "CTA", "market": "fr-FR", "issue": "Empty content"},
            body["incomplete"],
        )

    def test_import_word_all_files_fail(self) -> None:
        files = [("files", ("a_en-US.docx", b"x", DOCX_MEDIA_TYPE)), ("files", ("b_fr-FR.docx", b"y", DOCX_MEDIA_TYPE))]
        response = self.client.post("/api/v1/import/word", files=files)

        self.assertEqual(response.status_code, 422)
        detail = response.json()["detail"]
        self.assertEqual([f["filename"] for f in detail["failures"]], ["a_en-US.docx", "b_fr-FR.docx"])

    def test_import_word_rejects_too_many_files(self) -> None:
        files = [("files", (f"c{i}_en-US.docx", b"x", DOCX_MEDIA_TYPE)) for i in range(3)]
        with mock.patch.object(settings, "MAX_UPLOAD_FILES", 2):
            response = self.client.post("/api/v1/import/word", files=files)
        self.assertEqual(response.status_code, 400)

    def test_import_word_rejects_wrong_extension(self) -> None:
        files = [("files", ("notes.txt", b"hello", "text/plain"))]
        response = self.client.post("/api/v1/import/word", files=files)
        self.assertEqual(response.status_code, 400)

    def test_import_word_to_excel_marks_missing_cells(self) -> None:
        files = [
            ("files", ("Copy_en-US.docx", docx_bytes(("Headline", "Hi"), ("CTA", "Go")), DOCX_MEDIA_TYPE)),
            ("files", ("Copy_fr-FR.docx", docx_bytes(("Headline", "Salut")), DOCX_MEDIA_TYPE)),
        ]
        response = self.client.post(
            "/api/v1/import/word/excel", files=files, data={"lead_market": "en-US", "project_name": "Spring"}
        )

        self.assertEqual(response.status_code, 200)
        ws = load_workbook(io.BytesIO(response.content))["Copy Template"]
        self.assertEqual([c.value for c in ws[3]], ["Hero", "CTA", "Go", "[fr-FR translation needed]"])

    def test_import_excel(self) -> None:
        content = xlsx_bytes([
            ["Deliverable", "Name", "en-US", "xx-YY"],
            ["Hero", "Headline", "Hi", "Hallo"],
        ])
        response = self.client.post(
            "/api/v1/import/excel",
            files={"file": ("Spring_Localization_Template.xlsx", content, XLSX_MEDIA_TYPE)},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["kind"], "excel")
        self.assertEqual(body["project_name"], "Spring")
        self.assertEqual(body["markets"], ["en-US", "xx-YY"])
        self.assertIn('Unknown market code: "xx-YY" - may not be in standard list', body["warnings"])
        self.assertEqual(body["grouped"][0]["name"], "Hero")

    def test_import_excel_invalid_structure(self) -> None:
        content = xlsx_bytes([["Deliverable", "Name"], ["Hero", "Headline"]])
        response = self.client.post(
            "/api/v1/import/excel", files={"file": ("copy.xlsx", content, XLSX_MEDIA_TYPE)}
        )
        self.assertEqual(response.status_code, 400)

    def test_import_excel_rejects_legacy_xls(self) -> None:
        content = xlsx_bytes([["Deliverable", "Name", "en-US"], ["Hero", "Headline", "Hi"]])
        response = self.client.post(
            "/api/v1/import/excel", files={"file": ("copy.xls", content, "application/vnd.ms-excel")}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("expected .xlsx", response.json()["detail"])

    def test_import_excel_to_word(self) -> None:
        content = xlsx_bytes([
            ["Deliverable", "Name", "en-US", "fr-FR"],
            ["Hero", "Headline", "Hi", "Salut"],
            ["Hero", "CTA", "Go", None],
        ])
        response = self.client.post(
            "/api/v1/import/excel/word?market=fr-FR",
            files={"file": ("copy.xlsx", content, XLSX_MEDIA_TYPE)},
        )

        self.assertEqual(response.status_code, 200)
        texts = [p.text for p in Document(io.BytesIO(response.content)).paragraphs]
        self.assertIn("Headline: Salut", texts)
        self.assertIn("CTA: ", texts)

    def test_import_excel_to_word_rewrites_placeholder_cells(self) -> None:
        content = xlsx_bytes([
            ["Deliverable", "Name", "en-US", "fr-FR"],
            ["Hero", "Headline", "Hi", "Salut"],
            ["Hero", "CTA", "Go", "[fr-FR translation needed]"],
        ])
        response = self.client.post(
            "/api/v1/import/excel/word?market=fr-FR",
            files={"file": ("copy.xlsx", content, XLSX_MEDIA_TYPE)},
        )

        self.assertEqual(response.status_code, 200)
        texts = [p.text for p in Document(io.BytesIO(response.content)).paragraphs]
        self.assertIn("CTA: [CTA translation needed]", texts)
        self.assertNotIn("CTA: [fr-FR translation needed]", texts)

    def test_import_excel_to_word_for_each_market(self) -> None:
        content = xlsx_bytes([
            ["Deliverable", "Name", "en-US", "fr-FR"],
            ["Hero", "Headline", "Hi", "Salut"],
        ])
        upload = {"file": ("copy.xlsx", content, XLSX_MEDIA_TYPE)}
        markets = self.client.post("/api/v1/import/excel", files=upload).json()["markets"]

        headlines = {}
        for market in markets:
            response = self.client.post(f"/api/v1/import/excel/word?market={market}", files=upload)
            self.assertEqual(response.status_code, 200)
            self.assertIn(f"Marketing_Copy_{market}.docx", response.headers["content-disposition"])
            texts = [p.text for p in Document(io.BytesIO(response.content)).paragraphs]
            headlines[market] = [t for t in texts if t.startswith("Headline:")]

        self.assertEqual(headlines, {"en-US": ["Headline: Hi"], "fr-FR": ["Headline: Salut"]})

    def test_import_excel_to_word_unknown_market(self) -> None:
        content = xlsx_bytes([["Deliverable", "Name", "en-US"], ["Hero", "Headline", "Hi"]])
        response = self.client.post(
            "/api/v1/import/excel/word?market=de-DE",
            files={"file": ("copy.xlsx", content, XLSX_MEDIA_TYPE)},
        )
        self.assertEqual(response.status_code, 400)


class QAEndpointsTests(ApiTestCase):
    project = {
        "kind": "excel",
        "project_name": "Spring",
        "markets": ["en-US"],
        "rows": [{"deliverable": "Hero", "field": "Headline", "content": {"en-US": "Hi"}}],
    }

    def test_batch_report(self) -> None:
        self.use_llm(FakeLLMClient(response=json.dumps(VALID_REPORT)))
        response = self.client.post("/api/v1/qa/batch", json={"project": self.project})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), VALID_REPORT)

    def test_batch_malformed_response(self) -> None:
        self.use_llm(FakeLLMClient(response="oops"))
        response = self.client.post("/api/v1/qa/batch", json={"project": self.project})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"]["raw_text"], "oops")

    def test_batch_rate_limited(self) -> None:
        self.use_llm(FakeLLMClient(response=json.dumps(VALID_REPORT)))
        self.services.rate_limiter = RateLimiter(max_requests=1)

        first = self.client.post("/api/v1/qa/batch", json={"project": None})
        second = self.client.post("/api/v1/qa/batch", json={"project": None})

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 429)

    def test_rate_limit_ignores_client_id_header(self) -> None:
        self.use_llm(FakeLLMClient(response=json.dumps(VALID_REPORT)))
        self.services.rate_limiter = RateLimiter(max_requests=2)

        codes = [
            self.client.post(
                "/api/v1/qa/batch", json={"project": None}, headers={"X-Client-Id": f"c{i}"}
            ).status_code
            for i in range(3)
        ]

        self.assertEqual(codes, [200, 200, 429])
        self.assertEqual(list(self.services.rate_limiter._windows), ["testclient"])

    def test_batch_without_api_key(self) -> None:
        self.services.qa_engine = None
        with mock.patch.object(settings, "OPENAI_API_KEY", None):
            response = self.client.post("/api/v1/qa/batch", json={"project": self.project})
        self.assertEqual(response.status_code, 500)

    def test_word_project_payload(self) -> None:
        self.use_llm(FakeLLMClient(response=json.dumps(VALID_REPORT)))
        project = {
            "kind": "word",
            "documents": [{
                "filename": "Copy_en-US.docx",
                "market": "en-US",
                "sections": [{"deliverable": "Hero", "fields": [{"name": "Headline", "content": "Hi"}]}],
            }],
        }
        response = self.client.post("/api/v1/qa/batch", json={"project": project})
        self.assertEqual(response.status_code, 200)

    def test_word_project_with_rows_only(self) -> None:
        llm = FakeLLMClient(response=json.dumps(VALID_REPORT))
        self.use_llm(llm)
        project = {
            "kind": "word",
            "markets": ["en-US"],
            "rows": [{"deliverable": "Hero", "field": "Headline", "content": {"en-US": "Buy now"}}],
        }
        response = self.client.post("/api/v1/qa/batch", json={"project": project})

        self.assertEqual(response.status_code, 200)
        self.assertIn("[Hero - Headline]", llm.user_prompts[0])
        self.assertIn("en-US: Buy now", llm.user_prompts[0])

    def test_unknown_project_kind(self) -> None:
        response = self.client.post("/api/v1/qa/batch", json={"project": {"kind": "pdf"}})
        self.assertEqual(response.status_code, 422)

    def test_chat_streams_text(self) -> None:
        self.use_llm(FakeLLMClient(chunks=("All ", "good.")))
        response = self.client.post("/api/v1/qa/chat", json={
            "project": self.project,
            "message": "Any issues?",
            "history": [{"role": "user", "content": "Hello"}],
        })
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/plain"))
        self.assertEqual(response.text, "All good.")


if __name__ == "__main__":
    unittest.main()
