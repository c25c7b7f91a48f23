"""Image helpers shared by the frame processor and the embedding extractor."""
from typing import Tuple, Union

import cv2
import numpy as np

ImageInput = Union[bytes, np.ndarray]


def decode_image(data: bytes) -> np.ndarray:
    """Decode an encoded still image (JPEG, PNG, ...) into a BGR array.

    Raises:
        ValueError: If the bytes are not a decodable image
    """
    decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if decoded is None:
        raise ValueError(f"Could not decode {len(data)} bytes as an image")
    return decoded


def as_image_array(image: ImageInput) -> np.ndarray:
    """Return a decoded image array for either encoded bytes or an array.

    Raises:
        ValueError: If the input cannot be interpreted as an image
    """
    if isinstance(image, (bytes, bytearray, memoryview)):
        return decode_image(bytes(image))
    if not isinstance(image, np.ndarray):
        raise ValueError(f"Unsupported image type: {type(image).__name__}")
    if image.ndim not in (2, 3) or image.size == 0:
        raise ValueError(f"Unsupported image shape: {image.shape}")
    return image


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """Return (width, height) of an image array."""
    height, width = image.shape[:2]
    return width, height


def copy_frame(frame: np.ndarray) -> np.ndarray:
    """Copy a frame so it outlives the upstream buffer it was delivered in."""
    return np.array(frame, copy=True)
