from __future__ import annotations

import io
import unittest

from docx import Document

from copy_engine.config import settings
from copy_engine.services.batch import parse_word_batch, require_parsed
from copy_engine.services.catalog import DeliverableCatalog
from copy_engine.services.errors import NoFilesParsedError
from copy_engine.services.reconciler import FieldReconciler
from copy_engine.services.types import BatchParseResult, ParseFailure, UploadedFile
from copy_engine.services.word_parser import WordDocumentParser


def docx_with_headline(text: str) -> bytes:
    doc = Document()
    doc.add_heading("Hero", level=1)
    doc.add_paragraph(f"Headline: {text}")
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


class ParseWordBatchTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.parser = WordDocumentParser(
            DeliverableCatalog.load(settings.CATALOG_PATH),
            FieldReconciler.from_file(settings.FIELD_SYNONYMS_PATH),
        )

    async def test_one_corrupt_file_does_not_stop_the_batch(self) -> None:
        files = [
            UploadedFile("Copy_en-US.docx", docx_with_headline("Hello")),
            UploadedFile("Copy_fr-FR.docx", b"corrupt"),
            UploadedFile("Copy_es-MX.docx", docx_with_headline("Hola")),
        ]

        result = await parse_word_batch(files, self.parser)

        self.assertEqual([doc.market for doc in result.parsed], ["en-US", "es-MX"])
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].filename, "Copy_fr-FR.docx")
        self.assertIn("Copy_fr-FR.docx", result.failures[0].error)

    async def test_all_files_failing_is_an_aggregate_error(self) -> None:
        files = [UploadedFile("a_en-US.docx", b"x"), UploadedFile("b_fr-FR.docx", b"y")]

        result = await parse_word_batch(files, self.parser)

        self.assertEqual(result.parsed, [])
        with self.assertRaises(NoFilesParsedError) as ctx:
            require_parsed(result)
        self.assertEqual([f.filename for f in ctx.exception.failures], ["a_en-US.docx", "b_fr-FR.docx"])

    async def test_empty_batch(self) -> None:
        result = await parse_word_batch([], self.parser)
        self.assertIs(require_parsed(result), result)


class RequireParsedTests(unittest.TestCase):
    def test_partial_success_passes(self) -> None:
        result = BatchParseResult(failures=[ParseFailure("a.docx", "boom")])
        result.parsed.append(object())
        self.assertIs(require_parsed(result), result)


if __name__ == "__main__":
    unittest.main()
