# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import base64
import binascii
import logging

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from manticore_ntlm import pkcs7
from manticore_ntlm.exceptions import Base64DecodeException, \
    BlockAlignException, CipherInitException, MalformedInputException

log = logging.getLogger(__name__)

# [MS-GPPREF] 2.2.1.1.4 Password Encryption
GPPP_KEY = binascii.unhexlify(
    "4e9906e8fcb66cc9faf49310620ffee8f496e806cc057990209b09a433b66c1b"
)
GPPP_IV = b"\x00" * 16


def _get_cipher():
    try:
        return Cipher(algorithms.AES(GPPP_KEY), modes.CBC(GPPP_IV))
    except ValueError as err:
        raise CipherInitException("Failed to initialise the GPPP AES "
                                  "cipher: %s" % str(err)) from err


def _fix_base64_padding(value):
    # cpassword values are often stored without their trailing '='
    remainder = len(value) % 4
    if remainder == 1:
        return value[:-1]
    elif remainder in (2, 3):
        return value + "=" * (4 - remainder)
    return value


def encrypt(plaintext):
    """
    Encrypts a password the same way Group Policy Preferences stores it in
    the cpassword attribute.

    :param plaintext: The password string
    :return: The base64 encoded cipher text as a string
    """
    block_size = algorithms.AES.block_size // 8
    padded = pkcs7.pad(plaintext.encode('utf-16-le'), block_size)

    encryptor = _get_cipher().encryptor()
    cipher_text = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(cipher_text).decode('ascii')


def decrypt(cpassword):
    """
    Decrypts a Group Policy Preferences cpassword value.

    :param cpassword: The base64 encoded cipher text, missing '=' padding is
        tolerated
    :return: The password string
    """
    fixed = _fix_base64_padding(cpassword)
    try:
        cipher_text = base64.b64decode(fixed, validate=True)
    except (binascii.Error, ValueError) as err:
        raise Base64DecodeException("Failed to decode GPPP cpassword: %s"
                                    % str(err)) from err

    block_size = algorithms.AES.block_size // 8
    if len(cipher_text) == 0 or len(cipher_text) % block_size != 0:
        raise BlockAlignException("GPPP cipher text length %d is not a "
                                  "multiple of the AES block size %d"
                                  % (len(cipher_text), block_size))

    log.debug("Decrypting GPPP cpassword of %d bytes" % len(cipher_text))
    decryptor = _get_cipher().decryptor()
    padded = decryptor.update(cipher_text) + decryptor.finalize()

    plaintext = pkcs7.unpad(padded)
    try:
        return plaintext.decode('utf-16-le')
    except UnicodeDecodeError as err:
        raise MalformedInputException("GPPP plaintext is not valid "
                                      "UTF-16-LE: %s" % str(err)) from err
