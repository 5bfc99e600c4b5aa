import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from pypdf.errors import PdfReadError

from learnai.errors import InputError, TransportError
from learnai.file_utils import FileUtils
from learnai.models import UploadedFile

LONG_TEXT = "The derivative measures how a function changes as its input changes. " * 6


def fake_reader(*page_texts):
    reader = MagicMock()
    pages = []
    for text in page_texts:
        page = MagicMock()
        page.extract_text.return_value = text
        pages.append(page)
    reader.pages = pages
    return reader


class TestFileUtils(unittest.TestCase):
    def setUp(self):
        self.fu = FileUtils()

    def test_mime_type_lookup(self):
        cases = {
            "notes.PDF": "application/pdf",
            "essay.docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "scan.jpeg": "image/jpeg",
            "readme": "application/pdf",
        }
        for name, expected in cases.items():
            with self.subTest(name=name):
                self.assertEqual(self.fu.mime_type_for(UploadedFile(filename=name, data=b"x")), expected)
        explicit = UploadedFile(filename="a.bin", data=b"x", mime_type="image/webp")
        self.assertEqual(self.fu.mime_type_for(explicit), "image/webp")

    def test_encode_files(self):
        parts = self.fu.encode_files([UploadedFile(filename="a.txt", data=b"hi")])
        self.assertEqual(parts, [{"mime_type": "text/plain", "data": "aGk="}])

    def test_empty_file_rejected(self):
        with self.assertRaises(InputError):
            self.fu.file_to_base64(UploadedFile(filename="empty.pdf", data=b""))

    def test_read_upload(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "hw.txt")
            with open(path, "wb") as f:
                f.write(b"2 + 2")
            upload = self.fu.read_upload(path)
        self.assertEqual(upload.filename, "hw.txt")
        self.assertEqual(upload.data, b"2 + 2")
        self.assertEqual(upload.mime_type, "text/plain")

    def test_text_files_are_decoded(self):
        upload = UploadedFile(filename="hw.txt", data=b"line one  \r\n\r\n\r\n\r\nline   two")
        self.assertEqual(self.fu.extract_text(upload), "line one\n\nline two")

    @patch("pypdf.PdfReader")
    def test_pdf_with_text_layer_skips_extractor(self, reader_cls):
        reader_cls.return_value = fake_reader(LONG_TEXT, "")
        extractor = MagicMock()
        text = self.fu.extract_text(UploadedFile(filename="calc.pdf", data=b"%PDF"), extractor)
        self.assertEqual(text, LONG_TEXT.strip())
        extractor.extract_text.assert_not_called()

    @patch("pypdf.PdfReader")
    def test_scanned_pdf_goes_to_extractor(self, reader_cls):
        reader_cls.return_value = fake_reader("  ")
        extractor = MagicMock()
        extractor.extract_text.return_value = "ocr text"
        text = self.fu.extract_text(UploadedFile(filename="scan.pdf", data=b"%PDF"), extractor)
        self.assertEqual(text, "ocr text")
        extractor.extract_text.assert_called_once_with(b"%PDF", "application/pdf")

    @patch("pypdf.PdfReader")
    def test_unreadable_pdf_yields_no_text(self, reader_cls):
        reader_cls.side_effect = PdfReadError("EOF marker not found")
        self.assertEqual(self.fu.extract_text_from_pdf_bytes(b"junk"), "")

    def test_images_need_an_extractor(self):
        with self.assertRaises(TransportError):
            self.fu.extract_text(UploadedFile(filename="photo.png", data=b"\x89PNG"))


if __name__ == "__main__":
    unittest.main()
