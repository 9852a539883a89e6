"""Text recognition collaborator backed by Tesseract.

The core only depends on the :class:`OCREngine` protocol; this module also
ships the Tesseract implementation and the page loader that turns an
uploaded image or PDF into page arrays.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np
import pytesseract
from pdf2image import convert_from_bytes, convert_from_path
from PIL import Image

from docguardian.errors import OCREngineUnavailableError, OCRModelLoadError
from docguardian.utils.config import OCRConfig
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)

PAGE_SEPARATOR = "\n\n"


@dataclass
class OCRResult:
    """Recognised text of a document with its mean word confidence (0-100)."""

    text: str
    confidence: float


class OCREngine(Protocol):
    """Anything that can turn page images into text."""

    def recognize(self, image: np.ndarray) -> OCRResult: ...


def load_pages(source: Path | bytes, dpi: int = 300) -> list[np.ndarray]:
    """Load the pages of an uploaded document as numpy arrays.

    PDFs are rasterised with pdf2image; anything else is opened with
    Pillow as a single page.

    Args:
        source: Path to the upload, or its raw bytes.
        dpi: Rendering resolution for PDF pages.

    Returns:
        One array per page.

    Raises:
        FileNotFoundError: If a path is given and the file does not exist.
    """
    if isinstance(source, bytes):
        if source[:4] == b"%PDF":
            pages = convert_from_bytes(source, dpi=dpi)
        else:
            pages = [Image.open(io.BytesIO(source))]
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Upload not found: {path}")
        if path.suffix.lower() == ".pdf":
            pages = convert_from_path(str(path), dpi=dpi)
        else:
            pages = [Image.open(path)]

    logger.debug("Loaded %d page(s) at %d DPI", len(pages), dpi)
    return [np.array(page) for page in pages]


class TesseractEngine:
    """Tesseract implementation of :class:`OCREngine`.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: OCR language code.
        psm: Tesseract page segmentation mode.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng",
        psm: int = 3,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang
        self.psm = psm

    @classmethod
    def from_config(cls, config: OCRConfig) -> "TesseractEngine":
        return cls(
            tesseract_cmd=config.tesseract_cmd,
            default_lang=config.default_lang,
            psm=config.psm,
        )

    def recognize(self, image: np.ndarray) -> OCRResult:
        """Recognise the text on one page.

        Args:
            image: Page image as a numpy array.

        Returns:
            The page text and the mean confidence of its words.

        Raises:
            OCREngineUnavailableError: If the Tesseract binary is missing.
            OCRModelLoadError: If Tesseract fails, typically because the
                language data cannot be loaded.
        """
        config = f"--psm {self.psm}"
        pil_image = Image.fromarray(image)

        try:
            text = pytesseract.image_to_string(
                pil_image, lang=self.default_lang, config=config
            )
            data = pytesseract.image_to_data(
                pil_image,
                lang=self.default_lang,
                config=config,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractNotFoundError as exc:
            raise OCREngineUnavailableError(str(exc)) from exc
        except pytesseract.TesseractError as exc:
            raise OCRModelLoadError(str(exc)) from exc

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"], strict=False)
            if float(conf) > 0 and word.strip()
        ]
        confidence = sum(confidences) / len(confidences) if confidences else 0.0

        logger.info(
            "OCR extracted %d words with average confidence %.1f",
            len(confidences),
            confidence,
        )
        return OCRResult(text=text, confidence=confidence)


def recognize_document(engine: OCREngine, pages: list[np.ndarray]) -> OCRResult:
    """Recognise a multi-page document with any engine.

    Page texts are joined with blank lines; the confidence is the mean
    of the page confidences.
    """
    results = [engine.recognize(page) for page in pages]
    if not results:
        return OCRResult(text="", confidence=0.0)
    return OCRResult(
        text=PAGE_SEPARATOR.join(r.text for r in results),
        confidence=sum(r.confidence for r in results) / len(results),
    )
