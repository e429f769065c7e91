"""CRC-16 over the polynomial 0x18005 as used in Inkbird advertisements.

With seed 0xFFFF, reflected input and output and no final XOR this is
CRC-16/MODBUS. The lookup table is generated from the normal-form
polynomial; reflection is applied per byte and on the final register.
"""

from typing import Optional

POLYNOMIAL = 0x8005

MODBUS_SEED = 0xFFFF
MODBUS_FINAL_XOR = 0x0000


def _generate_crc_table() -> list[int]:
    """Generate the 256-entry MSB-first lookup table for POLYNOMIAL."""
    table = []
    for i in range(256):
        crc = i << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ POLYNOMIAL
            else:
                crc = crc << 1
            crc &= 0xFFFF
        table.append(crc)
    return table


def _reflect(value: int, width: int) -> int:
    """Mirror the lowest width bits of value."""
    result = 0
    for _ in range(width):
        result = (result << 1) | (value & 1)
        value >>= 1
    return result


CRC_TABLE = _generate_crc_table()
REFLECTED_BYTES = [_reflect(i, 8) for i in range(256)]


def crc16(
    data: bytes,
    offset: int,
    length: int,
    reflect_input: bool,
    reflect_output: bool,
    seed: int,
    final_xor: int,
) -> int:
    """Calculate the CRC over data[offset:offset + length].

    Raises:
        IndexError: if the range does not lie inside data
    """
    if offset < 0 or length < 0 or offset + length > len(data):
        raise IndexError(
            f"CRC range {offset}..{offset + length} outside buffer of {len(data)} bytes"
        )

    crc = seed & 0xFFFF
    for byte in data[offset:offset + length]:
        if reflect_input:
            byte = REFLECTED_BYTES[byte]
        crc = (CRC_TABLE[((crc >> 8) ^ byte) & 0xFF] ^ (crc << 8)) & 0xFFFF

    if reflect_output:
        crc = _reflect(crc, 16)

    return (crc ^ final_xor) & 0xFFFF


def crc16_modbus(data: bytes, offset: int = 0, length: Optional[int] = None) -> int:
    """CRC-16/MODBUS over a byte range (whole buffer by default)."""
    if length is None:
        length = len(data) - offset
    return crc16(data, offset, length, True, True, MODBUS_SEED, MODBUS_FINAL_XOR)
