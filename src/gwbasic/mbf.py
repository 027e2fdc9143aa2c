## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# Microsoft Binary Format codec.  Byte layout, both precisions: [exponent, sign|m_hi, ..., m_lo]
# with exponent bias 128, implicit leading one, and exponent 0 meaning zero.
#

import math
import struct


MBF32_MAX = math.ldexp((1 << 24) - 1, 127 - 24)
MBF64_MAX = math.ldexp((1 << 56) - 1, 127 - 56)

_F32_MAX = struct.unpack('<f', b'\xff\xff\x7f\x7f')[0]
_MBF32_MAX_BYTES = b'\xff\x7f\xff\xff'
_MBF64_MAX_BYTES = b'\xff\x7f\xff\xff\xff\xff\xff\xff'


def _clamp(max_bytes: bytes, negative: bool) -> bytes:
    return bytes([max_bytes[0], max_bytes[1] | (0x80 if negative else 0)]) + max_bytes[2:]


## SINGLE PRECISION
def ieee_to_mbf32(value: float) -> bytes:
    """Encode a float as MBF32; non-finite and out-of-range values clamp to the largest magnitude."""
    negative = math.copysign(1.0, value) < 0
    if not math.isfinite(value) or abs(value) > _F32_MAX: return _clamp(_MBF32_MAX_BYTES, negative)
    bits = struct.unpack('<I', struct.pack('<f', value))[0]
    exponent, mantissa = (bits >> 23) & 0xFF, bits & 0x7FFFFF
    if exponent == 0: return bytes(4)
    if (exponent := exponent + 2) > 0xFF: return _clamp(_MBF32_MAX_BYTES, negative)
    sign = 0x80 if bits >> 31 else 0
    return bytes([exponent, sign | (mantissa >> 16), (mantissa >> 8) & 0xFF, mantissa & 0xFF])

def mbf32_to_ieee(data: bytes) -> float:
    if len(data) != 4: raise ValueError(f"MBF32 needs 4 bytes, got {len(data)}.")
    if (exponent := data[0]) == 0: return 0.0
    mantissa = ((data[1] & 0x7F) << 16) | (data[2] << 8) | data[3] | 0x800000
    value = math.ldexp(mantissa, exponent - 128 - 24)
    return -value if data[1] & 0x80 else value


## DOUBLE PRECISION
def ieee_to_mbf64(value: float) -> bytes:
    negative = math.copysign(1.0, value) < 0
    if not math.isfinite(value): return _clamp(_MBF64_MAX_BYTES, negative)
    if value == 0.0: return bytes(8)
    bits = struct.unpack('<Q', struct.pack('<d', value))[0]
    exponent, mantissa = (bits >> 52) & 0x7FF, bits & ((1 << 52) - 1)
    if exponent == 0: return bytes(8)
    exponent = exponent - 1023 + 129
    if exponent <= 0: return bytes(8)
    if exponent > 0xFF: return _clamp(_MBF64_MAX_BYTES, negative)
    mantissa <<= 3
    body = mantissa.to_bytes(7, 'big')
    return bytes([exponent, body[0] | (0x80 if negative else 0)]) + body[1:]

def mbf64_to_ieee(data: bytes) -> float:
    if len(data) != 8: raise ValueError(f"MBF64 needs 8 bytes, got {len(data)}.")
    if (exponent := data[0]) == 0: return 0.0
    mantissa = int.from_bytes(bytes([data[1] & 0x7F]) + data[2:], 'big') | (1 << 55)
    value = math.ldexp(mantissa, exponent - 128 - 56)
    return -value if data[1] & 0x80 else value


## CONVERSIONS BETWEEN PRECISIONS
def mbf64_to_mbf32(data: bytes) -> bytes:
    """Narrow to single precision, rounding the low 32 mantissa bits to nearest, ties to even."""
    if (exponent := data[0]) == 0: return bytes(4)
    negative = bool(data[1] & 0x80)
    mantissa = int.from_bytes(bytes([data[1] & 0x7F]) + data[2:], 'big') | (1 << 55)
    kept, rest = mantissa >> 32, mantissa & 0xFFFFFFFF
    if rest > 0x80000000 or (rest == 0x80000000 and kept & 1): kept += 1
    if kept >> 24:
        kept >>= 1
        exponent += 1
        if exponent > 0xFF: return _clamp(_MBF32_MAX_BYTES, negative)
    return bytes([exponent, (0x80 if negative else 0) | ((kept >> 16) & 0x7F), (kept >> 8) & 0xFF, kept & 0xFF])

def mbf32_to_mbf64(data: bytes) -> bytes:
    return bytes(data) + bytes(4)


def round_single(value: float) -> float:
    """Round a Python float to the nearest value representable as an MBF single."""
    return mbf32_to_ieee(ieee_to_mbf32(value))
