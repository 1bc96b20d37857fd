# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import binascii
import struct

_MASK = 0xFFFFFFFF


def _rotl(value, shift):
    return ((value << shift) | (value >> (32 - shift))) & _MASK


def _f(x, y, z):
    return (x & y) | (~x & z)


def _g(x, y, z):
    return (x & y) | (x & z) | (y & z)


def _h(x, y, z):
    return x ^ y ^ z


class MD4(object):
    """
    [RFC-1320] The MD4 Message-Digest Algorithm
    https://tools.ietf.org/html/rfc1320

    Streaming MD4 with the same surface as the hashlib objects. OpenSSL 3
    no longer ships MD4 in its default provider so hashlib.new('md4') can't
    be relied on and NTLM needs it for every hash it derives.

    All state lives on the instance, digest() works on a copy so update()
    can keep being called afterwards.
    """
    name = 'md4'
    block_size = 64
    digest_size = 16

    _INITIAL_STATE = (0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476)

    def __init__(self, data=b""):
        self._state = list(self._INITIAL_STATE)
        self._buffer = b""
        self._length = 0

        if data:
            self.update(data)

    def update(self, data):
        data = bytes(data)
        self._length += len(data)

        buffer = self._buffer + data
        full_blocks = len(buffer) - (len(buffer) % self.block_size)
        for offset in range(0, full_blocks, self.block_size):
            self._compress(buffer[offset:offset + self.block_size])
        self._buffer = buffer[full_blocks:]

    def copy(self):
        clone = MD4()
        clone._state = list(self._state)
        clone._buffer = self._buffer
        clone._length = self._length
        return clone

    def digest(self):
        bit_length = (self._length * 8) & 0xFFFFFFFFFFFFFFFF
        padding = b"\x80" + b"\x00" * ((55 - self._length) % 64)

        final = self.copy()
        final.update(padding + struct.pack("<Q", bit_length))
        return struct.pack("<4I", *final._state)

    def hexdigest(self):
        return binascii.hexlify(self.digest()).decode('ascii')

    def _compress(self, block):
        x = struct.unpack("<16I", block)
        a, b, c, d = self._state

        # round 1
        for i in (0, 4, 8, 12):
            a = _rotl((a + _f(b, c, d) + x[i]) & _MASK, 3)
            d = _rotl((d + _f(a, b, c) + x[i + 1]) & _MASK, 7)
            c = _rotl((c + _f(d, a, b) + x[i + 2]) & _MASK, 11)
            b = _rotl((b + _f(c, d, a) + x[i + 3]) & _MASK, 19)

        # round 2
        for i in (0, 1, 2, 3):
            a = _rotl((a + _g(b, c, d) + x[i] + 0x5A827999) & _MASK, 3)
            d = _rotl((d + _g(a, b, c) + x[i + 4] + 0x5A827999) & _MASK, 5)
            c = _rotl((c + _g(d, a, b) + x[i + 8] + 0x5A827999) & _MASK, 9)
            b = _rotl((b + _g(c, d, a) + x[i + 12] + 0x5A827999) & _MASK, 13)

        # round 3
        for i in (0, 2, 1, 3):
            a = _rotl((a + _h(b, c, d) + x[i] + 0x6ED9EBA1) & _MASK, 3)
            d = _rotl((d + _h(a, b, c) + x[i + 8] + 0x6ED9EBA1) & _MASK, 9)
            c = _rotl((c + _h(d, a, b) + x[i + 4] + 0x6ED9EBA1) & _MASK, 11)
            b = _rotl((b + _h(c, d, a) + x[i + 12] + 0x6ED9EBA1) & _MASK, 15)

        self._state = [
            (self._state[0] + a) & _MASK,
            (self._state[1] + b) & _MASK,
            (self._state[2] + c) & _MASK,
            (self._state[3] + d) & _MASK,
        ]


def md4(data=b""):
    """
    Returns the 16 byte MD4 digest of data in one call.

    :param data: The byte string to hash
    :return: The MD4 digest
    """
    return MD4(data).digest()
