import base64
from typing import Tuple
from typing import Union

import fastcrc

from .const import BOC_GENERIC
from .const import BOC_IDX
from .const import BOC_IDX_CRC32C
from .const import HASH_BYTES
from .errors import FormatError

BOC_MAGICS = (BOC_GENERIC, BOC_IDX, BOC_IDX_CRC32C)


def to_signed(value: int, bits: int) -> int:
    if value >= 1 << (bits - 1):
        return value - (1 << bits)
    return value


def shard_hex(shard: int) -> str:
    return f'{shard:016x}'


def addr_full(workchain: int, addr: Union[str, bytes]) -> str:
    if isinstance(addr, bytes):
        addr = addr.hex()
    return f'{workchain}:{addr}'


def parse_addr_full(addr_full_: str) -> Tuple[int, str]:
    buff = addr_full_.split(':')
    if len(buff) != 2:
        raise FormatError(f'parse_addr_full error: not a raw address: {addr_full_}')
    workchain = int(buff[0])
    addr = buff[1]
    if len(bytes.fromhex(addr)) != HASH_BYTES:
        raise FormatError('parse_addr_full error: address is not 32 bytes')
    return workchain, addr


def addr_b64(workchain: int, addr: str, bounceable: bool = True, testnet: bool = False) -> str:
    """
    User friendly url-safe form of a raw address
    """
    tag = 0x11 if bounceable else 0x51
    if testnet:
        tag |= 0x80
    data = bytes([tag]) + workchain.to_bytes(1, byteorder='big', signed=True) + bytes.fromhex(addr)
    crc = fastcrc.crc16.xmodem(data)
    data += crc.to_bytes(2, byteorder='big')
    return base64.urlsafe_b64encode(data).decode()


def parse_addr_b64(addr_b64_: str) -> Tuple[int, str, bool]:
    """
    :return: workchain, address hex, bounceable
    """
    buff = addr_b64_.replace('-', '+').replace('_', '/')
    data = base64.b64decode(buff.encode())
    if len(data) != 36:
        raise FormatError(f'parse_addr_b64 error: expected 36 bytes, got {len(data)}')
    crc = int.from_bytes(data[34:36], byteorder='big')
    if crc != fastcrc.crc16.xmodem(data[:34]):
        raise FormatError('parse_addr_b64 error: crc do not match')
    bounceable = (data[0] & 0x40) == 0
    workchain = int.from_bytes(data[1:2], byteorder='big', signed=True)
    return workchain, data[2:34].hex(), bounceable


def parse_addr(addr: str) -> Tuple[int, str]:
    if ':' in addr:
        return parse_addr_full(addr)
    workchain, addr_hex, _ = parse_addr_b64(addr)
    return workchain, addr_hex


def decode_data(text: Union[str, bytes]) -> bytes:
    """
    Raw bytes from a hex or base64 encoded BOC
    """
    if isinstance(text, bytes):
        return text
    text = text.strip()
    try:
        data = bytes.fromhex(text)
    except ValueError:
        data = None
    if data is not None and data[:4].hex() in BOC_MAGICS:
        return data
    try:
        return base64.b64decode(text, validate=True)
    except ValueError as ex:
        if data is not None:
            return data
        raise FormatError(f'decode_data error: neither hex nor base64: {ex}')
