from __future__ import annotations

import numpy as np

from retouch.domain.entities.adjustment import AdjustmentVector


class AdjustmentService:
    """Pure NumPy photo adjustments. Inputs and outputs are float32 arrays normalized to [0, 1].

    Channel convention:
    - Grayscale: (H, W)
    - RGB: (H, W, 3)

    Field units follow ``AdjustmentVector``: brightness/contrast/saturation are
    percentages, hue is degrees, sharpen is 0-10 and noise reduction 0-100.
    Scaled vectors may exceed those ranges; pixel values are always clipped.
    """

    def apply(self, matrix: np.ndarray, vector: AdjustmentVector) -> np.ndarray:
        out = matrix.astype(np.float32)
        if vector.noise_reduction:
            out = self.reduce_noise(out, vector.noise_reduction / 100.0)
        if vector.brightness:
            out = self.adjust_brightness(out, vector.brightness / 100.0)
        if vector.contrast:
            out = self.adjust_contrast(out, 1.0 + vector.contrast / 100.0)
        if vector.saturation:
            out = self.adjust_saturation(out, 1.0 + vector.saturation / 100.0)
        if vector.hue:
            out = self.rotate_hue(out, float(vector.hue))
        if vector.sharpen:
            out = self.sharpen(out, vector.sharpen / 5.0)
        return out

    # Brightness: I_out = I_in + factor
    @staticmethod
    def adjust_brightness(matrix: np.ndarray, factor: float) -> np.ndarray:
        out = np.clip(matrix.astype(np.float32) + float(factor), 0.0, 1.0)
        return out.astype(np.float32)

    # Linear contrast around mid-gray: I_out = (I_in - 0.5) * k + 0.5
    @staticmethod
    def adjust_contrast(matrix: np.ndarray, k: float) -> np.ndarray:
        mat = matrix.astype(np.float32)
        out = np.clip((mat - 0.5) * max(float(k), 0.0) + 0.5, 0.0, 1.0)
        return out.astype(np.float32)

    # Saturation: blend away from luminosity gray, I_out = G + (I_in - G) * k
    @staticmethod
    def adjust_saturation(matrix: np.ndarray, k: float) -> np.ndarray:
        mat = matrix.astype(np.float32)
        if mat.ndim != 3 or mat.shape[2] < 3:
            return mat
        gray = AdjustmentService.grayscale_luminosity(mat)[..., None]
        out = np.clip(gray + (mat[..., :3] - gray) * max(float(k), 0.0), 0.0, 1.0)
        return out.astype(np.float32)

    # Hue rotation in YIQ space: rotate the (I, Q) chroma plane by `degrees`
    @staticmethod
    def rotate_hue(matrix: np.ndarray, degrees: float) -> np.ndarray:
        mat = matrix.astype(np.float32)
        if mat.ndim != 3 or mat.shape[2] < 3:
            return mat
        to_yiq = np.array(
            [[0.299, 0.587, 0.114], [0.596, -0.274, -0.322], [0.211, -0.523, 0.312]],
            dtype=np.float32,
        )
        to_rgb = np.linalg.inv(to_yiq).astype(np.float32)
        rad = np.deg2rad(degrees)
        cos_a = np.cos(rad)
        sin_a = np.sin(rad)
        rotation = np.array(
            [[1.0, 0.0, 0.0], [0.0, cos_a, -sin_a], [0.0, sin_a, cos_a]], dtype=np.float32
        )
        transform = to_rgb @ rotation @ to_yiq
        out = np.clip(mat[..., :3] @ transform.T, 0.0, 1.0)
        return out.astype(np.float32)

    # Unsharp mask: I_out = I_in + amount * (I_in - blur(I_in))
    @staticmethod
    def sharpen(matrix: np.ndarray, amount: float) -> np.ndarray:
        mat = matrix.astype(np.float32)
        blurred = AdjustmentService.box_blur(mat)
        out = np.clip(mat + float(amount) * (mat - blurred), 0.0, 1.0)
        return out.astype(np.float32)

    # Noise reduction: I_out = (1 - t) * I_in + t * blur(I_in)
    @staticmethod
    def reduce_noise(matrix: np.ndarray, strength: float) -> np.ndarray:
        t = float(np.clip(strength, 0.0, 1.0))
        mat = matrix.astype(np.float32)
        blurred = AdjustmentService.box_blur(mat)
        out = np.clip((1.0 - t) * mat + t * blurred, 0.0, 1.0)
        return out.astype(np.float32)

    # Grayscale (Luminosity): 0.299*R + 0.587*G + 0.114*B
    @staticmethod
    def grayscale_luminosity(matrix: np.ndarray) -> np.ndarray:
        mat = matrix.astype(np.float32)
        if mat.ndim == 3 and mat.shape[2] >= 3:
            weights = np.array([0.299, 0.587, 0.114], dtype=np.float32)
            return np.dot(mat[..., :3], weights).astype(np.float32)
        return mat

    # --------- helpers ---------
    @staticmethod
    def box_blur(matrix: np.ndarray, radius: int = 1) -> np.ndarray:
        mat = matrix.astype(np.float32)
        h, w = mat.shape[:2]
        pad_width = ((radius, radius), (radius, radius)) + ((0, 0),) * (mat.ndim - 2)
        padded = np.pad(mat, pad_width, mode="edge")
        size = 2 * radius + 1
        acc = np.zeros_like(mat)
        for dy in range(size):
            for dx in range(size):
                acc += padded[dy : dy + h, dx : dx + w]
        return (acc / float(size * size)).astype(np.float32)
