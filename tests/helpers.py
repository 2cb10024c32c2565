import io
import zipfile

import numpy as np
from PIL import Image
from pikepdf import Dictionary, Name, Stream


def noise_array(width, height, channels=3, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)


def encode(img, fmt, **kwargs):
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **kwargs)
    return buffer.getvalue()


def noisy_jpeg(width=160, height=160, quality=95, seed=0, mode="RGB"):
    """High-entropy JPEG that shrinks a lot when re-encoded at lower quality."""
    arr = noise_array(width, height, channels=len(mode), seed=seed)
    img = Image.frombytes(mode, (width, height), arr.tobytes())
    return encode(img, "JPEG", quality=quality)


def noisy_png(width=96, height=96, alpha=False, seed=0):
    arr = noise_array(width, height, channels=4 if alpha else 3, seed=seed)
    if alpha:
        arr[:, :, 3] = 128
    return encode(Image.fromarray(arr), "PNG")


def make_zip(entries, compression=zipfile.ZIP_DEFLATED):
    """Build an in-memory ZIP from (name, data) pairs, in order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression) as zf:
        for name, data in entries:
            if name == "mimetype":
                zf.writestr(name, data, compress_type=zipfile.ZIP_STORED)
            else:
                zf.writestr(name, data)
    return buffer.getvalue()


def read_zip(data):
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return [(info.filename, zf.read(info)) for info in zf.infolist()]


def image_stream(pdf, data, width, height, **extra):
    d = Dictionary({
        "/Type": Name.XObject,
        "/Subtype": Name.Image,
        "/Width": width,
        "/Height": height,
        "/ColorSpace": Name.DeviceRGB,
        "/BitsPerComponent": 8,
        "/Filter": Name.DCTDecode,
    })
    for key, value in extra.items():
        d["/" + key] = value
    return pdf.make_indirect(Stream(pdf, data, d))


def add_page(pdf, xobjects):
    """Append a page whose /Resources /XObject holds the given objects."""
    pdf.add_blank_page(page_size=(200, 200))
    page = pdf.pages[-1]
    page.obj["/Resources"] = Dictionary({"/XObject": Dictionary(xobjects)})
    draws = " ".join(f"q 200 0 0 200 0 0 cm {name} Do Q" for name in xobjects)
    page.obj["/Contents"] = pdf.make_indirect(Stream(pdf, draws.encode("ascii")))
    return page


def save_pdf(pdf):
    buffer = io.BytesIO()
    pdf.save(buffer)
    return buffer.getvalue()


