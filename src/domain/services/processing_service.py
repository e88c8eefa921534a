from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image, ImageOps

COMPOSITE_SIZE = 1024
MASK_ALPHA_THRESHOLD = 128


class ProcessingService:
    """Local NumPy / Pillow steps that sit between container stages.

    Channel convention for arrays: uint8, (H, W) for masks and (H, W, 4) for RGBA.
    """

    # Background is cropped to fill the canvas, subject is fitted inside it and centered.
    @staticmethod
    def composite_centered(
        subject: Image.Image, background: Image.Image, size: int = COMPOSITE_SIZE
    ) -> Image.Image:
        canvas = ImageOps.fit(background.convert("RGB"), (size, size), Image.Resampling.LANCZOS)
        fg = subject.convert("RGBA")
        fg = ImageOps.contain(fg, (size, size), Image.Resampling.LANCZOS)
        left = (size - fg.width) // 2
        top = (size - fg.height) // 2
        canvas.paste(fg, (left, top), fg)
        return canvas

    # Binary mask: 255 where alpha > threshold, 0 elsewhere
    @staticmethod
    def alpha_to_binary_mask(rgba: np.ndarray, threshold: int = MASK_ALPHA_THRESHOLD) -> np.ndarray:
        arr = np.asarray(rgba)
        if arr.ndim == 3 and arr.shape[2] == 4:
            alpha = arr[..., 3]
        elif arr.ndim == 2:
            alpha = arr
        else:
            # no alpha channel: every pixel is opaque
            alpha = np.full(arr.shape[:2], 255, dtype=np.uint8)
        return np.where(alpha > threshold, 255, 0).astype(np.uint8)

    @staticmethod
    def load_rgba(path: Path) -> np.ndarray:
        with Image.open(path) as img:
            return np.asarray(img.convert("RGBA"), dtype=np.uint8)

    @classmethod
    def write_composite(cls, subject_path: Path, background_path: Path, out_path: Path) -> Path:
        with Image.open(subject_path) as subject, Image.open(background_path) as background:
            composite = cls.composite_centered(subject, background)
        composite.save(out_path, format="JPEG", quality=95)
        return out_path

    @classmethod
    def write_binary_mask(cls, foreground_path: Path, out_path: Path) -> Path:
        mask = cls.alpha_to_binary_mask(cls.load_rgba(foreground_path))
        Image.fromarray(mask).save(out_path, format="PNG")
        return out_path
