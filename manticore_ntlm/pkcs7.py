# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from manticore_ntlm.exceptions import EmptyBufferException, \
    InvalidConfigurationException, PaddingException

MAX_BLOCK_SIZE = 255


def _byte_eq(x, y):
    # 1 when x == y else 0
    return (((x ^ y) - 1) & 0xFFFFFFFF) >> 31


def _less_or_eq(x, y):
    # 1 when x <= y else 0
    return ((x - y - 1) >> 31) & 1


def _select(choice, x, y):
    # x when choice is 1, y when choice is 0
    mask = choice - 1
    return (~mask & x) | (mask & y)


def pad(data, block_size):
    """
    [RFC-5652] 6.3. Content-encryption Process

    Appends N bytes of the value N so the length is a multiple of
    block_size, a full block is added when it already is.

    :param data: The byte string to pad
    :param block_size: The block size, between 1 and 255
    :return: The padded byte string
    """
    if block_size < 1 or block_size > MAX_BLOCK_SIZE:
        raise InvalidConfigurationException("Block size must be between 1 "
                                            "and %d, got %d"
                                            % (MAX_BLOCK_SIZE, block_size))

    pad_length = block_size - (len(data) % block_size)
    return bytes(data) + bytes([pad_length]) * pad_length


def unpad(data):
    """
    Strips the PKCS#7 padding from data.

    Every candidate position in the last 255 bytes is compared against the
    pad length and the results are folded into a single flag so the time
    taken does not depend on where the padding stops being valid.

    :param data: The padded byte string
    :return: The byte string without the padding
    """
    if len(data) == 0:
        raise EmptyBufferException("Cannot unpad an empty buffer")

    pad_length = data[-1]
    good = 1
    for i in range(min(MAX_BLOCK_SIZE, len(data))):
        out_of_range = _less_or_eq(pad_length, i)
        equal = _byte_eq(pad_length, data[-1 - i])
        good &= _select(out_of_range, 1, equal)

    good &= _less_or_eq(1, pad_length)
    good &= _less_or_eq(pad_length, len(data))

    if good != 1:
        raise PaddingException("Invalid PKCS#7 padding")

    return bytes(data[:len(data) - pad_length])
