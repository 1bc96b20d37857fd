# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import base64

import pytest

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from manticore_ntlm import gppp, pkcs7
from manticore_ntlm.exceptions import Base64DecodeException, \
    BlockAlignException, MalformedInputException, PaddingException


def _raw_encrypt(data):
    cipher = Cipher(algorithms.AES(gppp.GPPP_KEY), modes.CBC(gppp.GPPP_IV))
    encryptor = cipher.encryptor()
    cipher_text = encryptor.update(data) + encryptor.finalize()
    return base64.b64encode(cipher_text).decode('ascii')


class TestGPPPDecrypt(object):

    def test_decrypt(self):
        actual = gppp.decrypt("bdajdgpjZqolVYI3h2O2mp+JpxDuZd0xoi2M86z7JuI=")
        assert actual == "Podalirius"

    def test_decrypt_missing_padding(self):
        actual = gppp.decrypt("bdajdgpjZqolVYI3h2O2mp+JpxDuZd0xoi2M86z7JuI")
        assert actual == "Podalirius"

    def test_decrypt_published_sample(self):
        actual = gppp.decrypt("j1Uyj3Vx8TY9LtLZil2uAuZkFQA/4latT76ZwgdHdhw")
        assert actual == "Local*P4ssword!"

    def test_decrypt_invalid_base64(self):
        with pytest.raises(Base64DecodeException) as exc:
            gppp.decrypt("!!!!")
        assert str(exc.value).startswith("Failed to decode GPPP cpassword")

    def test_decrypt_empty(self):
        with pytest.raises(BlockAlignException):
            gppp.decrypt("")

    def test_decrypt_not_block_aligned(self):
        with pytest.raises(BlockAlignException) as exc:
            gppp.decrypt(base64.b64encode(b"\x00" * 8).decode('ascii'))
        assert str(exc.value) == "GPPP cipher text length 8 is not a " \
                                 "multiple of the AES block size 16"

    def test_decrypt_invalid_padding(self):
        with pytest.raises(PaddingException):
            gppp.decrypt(_raw_encrypt(b"\x00" * 16))

    def test_decrypt_invalid_utf16(self):
        with pytest.raises(MalformedInputException) as exc:
            gppp.decrypt(_raw_encrypt(pkcs7.pad(b"abc", 16)))
        assert str(exc.value).startswith("GPPP plaintext is not valid "
                                         "UTF-16-LE")


class TestGPPPEncrypt(object):

    def test_encrypt(self):
        actual = gppp.encrypt("Podalirius")
        assert actual == "bdajdgpjZqolVYI3h2O2mp+JpxDuZd0xoi2M86z7JuI="

    @pytest.mark.parametrize('password', [
        "",
        "a",
        "ÜberPasswörd",
        "exactly8",
        "a much longer password that spans several AES blocks",
    ])
    def test_encrypt_decrypt(self, password):
        cpassword = gppp.encrypt(password)
        assert len(base64.b64decode(cpassword)) % 16 == 0
        assert gppp.decrypt(cpassword) == password
