import pikepdf
import pytest

from helpers import add_page, image_stream, noisy_jpeg, save_pdf


@pytest.fixture
def progress():
    return []


@pytest.fixture
def recompress_calls(monkeypatch):
    """Count calls to the image recompressor while delegating to it."""
    from doc_optimizer import compression

    calls = []
    real = compression.recompress

    def counting(data, declared_mime, quality):
        calls.append((len(data), declared_mime, quality))
        return real(data, declared_mime, quality)

    monkeypatch.setattr(compression, "recompress", counting)
    return calls


@pytest.fixture
def shared_image_pdf():
    """One JPEG image object referenced from two pages, plus its bytes."""
    jpeg = noisy_jpeg(200, 200)
    pdf = pikepdf.new()
    img = image_stream(pdf, jpeg, 200, 200)
    add_page(pdf, {"/Im0": img})
    add_page(pdf, {"/Im0": img})
    return save_pdf(pdf), jpeg
