# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import hashlib
import hmac
import time

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from manticore_ntlm.exceptions import CipherInitException, \
    InvalidConfigurationException

# Code page used for OEM strings, NTLM leaves it up to the host
OEM_ENCODING = 'windows-1252'

# 1970-01-01 expressed as a FILETIME
EPOCH_FILETIME = 116444736000000000


def to_oem(text, upper=False):
    if upper:
        text = text.upper()
    return text.encode(OEM_ENCODING, errors='replace')


def to_unicode(text):
    return text.encode('utf-16-le')


def filetime_now():
    """
    The current time as a Windows FILETIME, the number of 100-nanosecond
    intervals since 1601-01-01 UTC.

    :return: int - the FILETIME value
    """
    return EPOCH_FILETIME + (time.time_ns() // 100)


def expand_des_key(key):
    """
    Spreads a 7 byte key over 8 bytes by taking 7 bits at a time and
    leaving the low bit of each byte clear. DES ignores the low bit so the
    parity is never set, this is how the LM hash has always derived its
    keys.

    :param key: The 7 byte key
    :return: The 8 byte DES key
    """
    value = int.from_bytes(key, byteorder='big')
    return bytes(((value >> (49 - 7 * i)) & 0x7F) << 1 for i in range(8))


def parity_bit(value):
    # 1 when the number of set bits is even so the byte ends up odd
    return (bin(value).count("1") + 1) % 2


def parity_adjust(key):
    """
    Converts the key to a stream of bits, splits it into groups of 7 bits
    and makes a byte of each group with the odd parity bit set in the low
    position. 7 bytes become a DES key of 8 bytes, bits that don't fill a
    whole group are dropped.

    :param key: The byte string to adjust
    :return: The parity adjusted byte string
    """
    bit_count = len(key) * 8
    usable_bits = bit_count - (bit_count % 7)
    value = int.from_bytes(key, byteorder='big') >> (bit_count - usable_bits)

    groups = usable_bits // 7
    adjusted = bytearray()
    for i in range(groups):
        byte = ((value >> (7 * (groups - 1 - i))) & 0x7F) << 1
        adjusted.append(byte | parity_bit(byte))

    return bytes(adjusted)


def des_encrypt(key, data):
    """
    Encrypts a single 8 byte block with DES in ECB mode.

    :param key: The 8 byte DES key, the low bit of each byte is ignored
    :param data: The 8 byte block to encrypt
    :return: The 8 byte cipher text
    """
    if len(key) != 8:
        raise InvalidConfigurationException("DES key must be 8 bytes, got %d"
                                            % len(key))
    try:
        # TripleDES with K1 == K2 == K3 is single DES
        cipher = Cipher(TripleDES(key * 3), modes.ECB())
    except ValueError as err:
        raise CipherInitException("Failed to initialise DES cipher: %s"
                                  % str(err)) from err

    encryptor = cipher.encryptor()
    return encryptor.update(data) + encryptor.finalize()


def desl(key, data):
    """
    [MS-NLMP] 6 Appendix A: Cryptographic Operations Reference - DESL

    Pads the 16 byte key to 21 bytes, splits it into 3 keys of 7 bytes and
    encrypts the 8 byte data with each parity adjusted key.

    :param key: The 16 byte NT or LM hash
    :param data: The 8 byte server challenge
    :return: The 24 byte response
    """
    key = key + b"\x00" * (21 - len(key))
    return b"".join(des_encrypt(parity_adjust(key[i:i + 7]), data)
                    for i in (0, 7, 14))


def hmac_md5(key, data):
    return hmac.new(key, data, digestmod=hashlib.md5).digest()


def pbkdf2_hmac_sha1(password, salt, iterations, length):
    if iterations < 1:
        raise InvalidConfigurationException("PBKDF2 iterations must be 1 or "
                                            "greater, got %d" % iterations)

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA1(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password)
