from __future__ import annotations

import base64
import io
import logging
import mimetypes
import os
import re
import typing as t

from .errors import InputError, TransportError
from .models import UploadedFile

if t.TYPE_CHECKING:
    from .llm_clients import TextExtractor

logger = logging.getLogger(__name__)

_MIME_BY_EXTENSION = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}


class FileUtils:
    def read_upload(self, path: str) -> UploadedFile:
        with open(path, "rb") as f:
            data = f.read()
        name = os.path.basename(path)
        return UploadedFile(filename=name, data=data, mime_type=mimetypes.guess_type(name)[0])

    def mime_type_for(self, file: UploadedFile) -> str:
        if file.mime_type:
            return file.mime_type
        ext = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
        return _MIME_BY_EXTENSION.get(ext, "application/pdf")

    def file_to_base64(self, file: UploadedFile) -> str:
        if not file.data:
            raise InputError(
                f"Failed to process file {file.filename}. Please ensure the file is not corrupted and try again."
            )
        return base64.b64encode(file.data).decode("ascii")

    def encode_files(self, files: list[UploadedFile]) -> list[dict[str, str]]:
        parts: list[dict[str, str]] = []
        for f in files:
            parts.append({"mime_type": self.mime_type_for(f), "data": self.file_to_base64(f)})
            logger.info("Encoded reference file %s (%s)", f.filename, parts[-1]["mime_type"])
        return parts

    def extract_text_from_pdf_bytes(self, data: bytes) -> str:
        from pypdf import PdfReader
        from pypdf.errors import PdfReadError

        try:
            reader = PdfReader(io.BytesIO(data))
            texts = [page.extract_text() or "" for page in reader.pages]
        except PdfReadError as e:
            logger.info("pypdf could not read document: %s", e)
            return ""
        return self._normalize_extracted_text("\n\n".join(tx for tx in texts if tx.strip()))

    def extract_text(self, file: UploadedFile, extractor: "TextExtractor | None" = None) -> str:
        mime = self.mime_type_for(file)
        if mime.startswith("text/"):
            return self._normalize_extracted_text(file.data.decode("utf-8", errors="ignore"))
        if mime == "application/pdf":
            text = self.extract_text_from_pdf_bytes(file.data)
            if self._looks_like_useful_text(text):
                return text
        if extractor is None:
            raise TransportError(f"No text extraction service available for {file.filename}.")
        try:
            return extractor.extract_text(file.data, mime)
        except TransportError:
            logger.exception("Text extraction failed for %s", file.filename)
            raise

    def _looks_like_useful_text(self, text: str) -> bool:
        t0 = (text or "").strip()
        if len(t0) < 200:
            return False
        if len(re.findall(r"[A-Za-z]", t0)) < 80:
            return False
        return True

    def _normalize_extracted_text(self, text: str) -> str:
        s = text.replace("\r\n", "\n").replace("\r", "\n")
        s = re.sub(r"[ \t]+\n", "\n", s)
        s = re.sub(r"\n{3,}", "\n\n", s)
        s = re.sub(r"[ \t]{2,}", " ", s)
        return s.strip()
