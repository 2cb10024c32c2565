import io
import zipfile

import pytest

from doc_optimizer import compression
from doc_optimizer.container import is_image_entry, optimize_container
from doc_optimizer.errors import AssemblyError, ContainerLoadError
from doc_optimizer.results import DocumentArtifact
from doc_optimizer.settings import OptimizeSettings

from helpers import make_zip, noisy_jpeg, noisy_png, read_zip

CONTENT_XML = b"<?xml version='1.0'?><document>" + b"<p>text</p>" * 200 + b"</document>"


def three_jpeg_document():
    return make_zip([
        ("mimetype", b"application/hwp+zip"),
        ("Contents/section0.xml", CONTENT_XML),
        ("BinData/image1.jpg", noisy_jpeg(seed=1)),
        ("BinData/image2.jpeg", noisy_jpeg(seed=2)),
        ("BinData/image3.JPG", noisy_jpeg(seed=3)),
    ])


@pytest.mark.parametrize("path,expected", [
    ("word/media/image1.jpeg", True),
    ("ppt/media/IMAGE2.PNG", True),
    ("BinData/a.gif", True),
    ("BinData/a.bmp", True),
    ("ppt/media/image3.emf", False),
    ("word/document.xml", False),
    ("jpg", False),
])
def test_is_image_entry(path, expected):
    assert is_image_entry(path) is expected


def test_three_jpegs_shrink_the_document(progress):
    original = three_jpeg_document()
    artifact = DocumentArtifact("report.hwpx", original)

    result = optimize_container(artifact, OptimizeSettings(quality=60), progress.append)

    assert result.compressed_size < len(original)
    assert result.compressed_size == len(result.data)
    assert result.original_size == len(original)
    assert result.reduction_percentage > 0
    assert result.file_name == "report.hwpx"
    assert result.images_found == 3
    assert result.images_replaced == 3

    assert result.logs[0] == "Starting optimization for: report.hwpx"
    assert result.logs.count("Found 3 images in the document structure.") == 1
    assert len([line for line in result.logs if line.startswith("Replaced ")]) == 3
    assert progress == [5, 37, 63, 90, 100]


def test_repackaged_archive_keeps_entries_in_order():
    original = three_jpeg_document()
    result = optimize_container(DocumentArtifact("report.hwpx", original), OptimizeSettings(quality=60))

    before = read_zip(original)
    after = read_zip(result.data)

    assert [name for name, _ in after] == [name for name, _ in before]
    assert dict(after)["Contents/section0.xml"] == CONTENT_XML
    assert dict(after)["mimetype"] == b"application/hwp+zip"
    for name in ("BinData/image1.jpg", "BinData/image2.jpeg", "BinData/image3.JPG"):
        assert len(dict(after)[name]) < len(dict(before)[name])

    with zipfile.ZipFile(io.BytesIO(result.data)) as zf:
        assert zf.testzip() is None
        infos = zf.infolist()
        assert infos[0].filename == "mimetype"
        assert infos[0].compress_type == zipfile.ZIP_STORED
        assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in infos[1:])


def test_no_images_returns_input_unchanged(progress):
    original = make_zip([
        ("[Content_Types].xml", b"<Types/>"),
        ("word/document.xml", CONTENT_XML),
        ("word/media/", b""),
    ])
    artifact = DocumentArtifact("empty.docx", original)

    result = optimize_container(artifact, progress_callback=progress.append)

    assert result.data == original
    assert result.compressed_size == result.original_size == len(original)
    assert result.reduction_percentage == 0
    assert result.images_found == 0
    assert result.logs[-1] == "Found 0 images in the document structure."
    assert progress == [5, 100]


def test_skip_alpha_leaves_png_untouched(recompress_calls):
    png = noisy_png()
    original = make_zip([
        ("ppt/slides/slide1.xml", CONTENT_XML),
        ("ppt/media/image1.png", png),
        ("ppt/media/image2.jpg", noisy_jpeg()),
    ])

    result = optimize_container(
        DocumentArtifact("deck.pptx", original),
        OptimizeSettings(quality=60, skip_alpha=True),
    )

    assert dict(read_zip(result.data))["ppt/media/image1.png"] == png
    assert len(recompress_calls) == 1
    assert result.images_replaced == 1
    assert any("Skipped ppt/media/image1.png" in line for line in result.logs)


def test_uppercase_png_extension_is_also_skipped(recompress_calls):
    png = noisy_png()
    original = make_zip([("media/LOGO.PNG", png)])

    result = optimize_container(DocumentArtifact("a.pptx", original), OptimizeSettings(skip_alpha=True))

    assert recompress_calls == []
    assert dict(read_zip(result.data))["media/LOGO.PNG"] == png


def test_png_recompressed_when_skip_alpha_disabled():
    png = noisy_png(alpha=True)
    original = make_zip([("ppt/media/image1.png", png)])

    result = optimize_container(
        DocumentArtifact("deck.pptx", original),
        OptimizeSettings(quality=60, skip_alpha=False),
    )

    new_png = dict(read_zip(result.data))["ppt/media/image1.png"]
    assert len(new_png) < len(png)
    # Transparency-capable sources are re-encoded as WebP
    assert new_png[:4] == b"RIFF" and new_png[8:12] == b"WEBP"


def test_broken_image_is_kept_and_run_continues():
    broken = b"\xff\xd8\xff\xe0 definitely not a real jpeg"
    original = make_zip([
        ("word/media/broken.jpg", broken),
        ("word/media/good.jpg", noisy_jpeg()),
    ])

    result = optimize_container(DocumentArtifact("doc.docx", original), OptimizeSettings(quality=50))

    entries = dict(read_zip(result.data))
    assert entries["word/media/broken.jpg"] == broken
    assert result.images_failed == 1
    assert result.images_replaced == 1
    assert any(line.startswith("Error processing word/media/broken.jpg") for line in result.logs)


def test_image_replaced_only_when_strictly_smaller(monkeypatch):
    same = b"A" * 64
    bigger = b"B" * 64
    original = make_zip([("m/same.jpg", same), ("m/bigger.jpg", bigger)])

    def fake_recompress(data, declared_mime, quality):
        return b"z" * (len(data) if data == same else len(data) + 1)

    monkeypatch.setattr(compression, "recompress", fake_recompress)
    result = optimize_container(DocumentArtifact("doc.docx", original))

    entries = dict(read_zip(result.data))
    assert entries["m/same.jpg"] == same
    assert entries["m/bigger.jpg"] == bigger
    assert result.images_replaced == 0


def test_reduction_never_negative(monkeypatch):
    # Stored entries grow when nothing shrinks but the archive is rewritten
    original = make_zip([("m/a.jpg", b"x")], compression=zipfile.ZIP_STORED)
    monkeypatch.setattr(compression, "recompress", lambda *a: b"longer than one byte")

    result = optimize_container(DocumentArtifact("doc.docx", original))

    assert result.reduction_percentage >= 0


def test_parallel_workers_give_same_result():
    original = three_jpeg_document()
    artifact = DocumentArtifact("report.hwpx", original)

    sequential = optimize_container(artifact, OptimizeSettings(quality=60, max_workers=1))
    parallel = optimize_container(artifact, OptimizeSettings(quality=60, max_workers=3))

    assert read_zip(parallel.data) == read_zip(sequential.data)
    assert parallel.logs == sequential.logs


def test_invalid_archive_raises_container_load_error():
    with pytest.raises(ContainerLoadError):
        optimize_container(DocumentArtifact("bad.pptx", b"this is not a zip file"))


def test_assembly_failure_raises(monkeypatch):
    original = make_zip([("m/a.jpg", noisy_jpeg())])

    def broken_writestr(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(zipfile.ZipFile, "writestr", broken_writestr)
    with pytest.raises(AssemblyError):
        optimize_container(DocumentArtifact("doc.docx", original))
