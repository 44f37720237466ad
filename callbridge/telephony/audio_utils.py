"""
G.711 mu-law <-> PCM16 conversion between Twilio (mu-law 8kHz) and the
voice agent (PCM16 16kHz).

Resampling is linear interpolation on the way up and plain decimation on
the way down.
"""
import base64
from functools import lru_cache

import numpy as np

MULAW_BIAS = 0x84
MULAW_CLIP = 32635


@lru_cache(maxsize=1)
def mulaw_decode_table() -> np.ndarray:
    """Returns the 256-entry mu-law -> int16 lookup table (built on first use, read-only)."""
    mu = ~np.arange(256, dtype=np.int32) & 0xFF
    sign = mu & 0x80
    exponent = (mu >> 4) & 0x07
    mantissa = mu & 0x0F
    magnitude = (((mantissa << 3) + MULAW_BIAS) << exponent) - MULAW_BIAS
    table = np.where(sign != 0, -magnitude, magnitude).astype(np.int16)
    table.setflags(write=False)
    return table


@lru_cache(maxsize=1)
def _exponent_table() -> np.ndarray:
    # Index is (biased sample >> 7); value is the position of its highest set bit.
    values = np.arange(256, dtype=np.int32)
    table = np.zeros(256, dtype=np.int32)
    for exponent in range(1, 8):
        table[values >= (1 << exponent)] = exponent
    table.setflags(write=False)
    return table


def linear_to_mulaw(samples) -> bytes:
    """Encodes int16 samples to mu-law bytes (standard G.711 companding)."""
    pcm = np.asarray(samples, dtype=np.int32)
    sign = np.where(pcm < 0, 0x80, 0)
    magnitude = np.minimum(np.abs(pcm), MULAW_CLIP) + MULAW_BIAS
    exponent = _exponent_table()[magnitude >> 7]
    mantissa = (magnitude >> (exponent + 3)) & 0x0F
    encoded = ~(sign | (exponent << 4) | mantissa) & 0xFF
    return encoded.astype(np.uint8).tobytes()


def mulaw_to_pcm16k(mulaw_data: bytes) -> bytes:
    """Decodes mu-law 8kHz to PCM16 16kHz. N input bytes give 2N samples."""
    if not mulaw_data:
        return b""
    decoded = mulaw_decode_table()[np.frombuffer(mulaw_data, dtype=np.uint8)].astype(np.int32)
    following = np.empty_like(decoded)
    following[:-1] = decoded[1:]
    following[-1] = decoded[-1]

    out = np.empty(decoded.size * 2, dtype="<i2")
    out[0::2] = decoded
    out[1::2] = (decoded + following) >> 1
    return out.tobytes()


def pcm16k_to_mulaw(pcm_data: bytes) -> bytes:
    """Encodes PCM16 16kHz to mu-law 8kHz. M samples give floor(M/2) bytes."""
    # A dangling half-sample can't be decoded, drop it
    usable = len(pcm_data) - (len(pcm_data) % 2)
    samples = np.frombuffer(pcm_data[:usable], dtype="<i2")
    half = samples.size // 2
    return linear_to_mulaw(samples[0:half * 2:2])


def mulaw_b64_to_pcm16k_b64(payload: str) -> str:
    """Twilio media payload -> agent user_audio_chunk."""
    raw = base64.b64decode(payload, validate=True)
    return base64.b64encode(mulaw_to_pcm16k(raw)).decode("ascii")


def pcm16k_b64_to_mulaw_b64(payload: str) -> str:
    """Agent audio_base_64 -> Twilio media payload."""
    raw = base64.b64decode(payload, validate=True)
    return base64.b64encode(pcm16k_to_mulaw(raw)).decode("ascii")
