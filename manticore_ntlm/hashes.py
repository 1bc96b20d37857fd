# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import binascii

from manticore_ntlm.crypto import des_encrypt, expand_des_key, \
    pbkdf2_hmac_sha1, to_oem, to_unicode
from manticore_ntlm.exceptions import InvalidConfigurationException
from manticore_ntlm.md4 import MD4

LM_MAGIC = b"KGS!@#$%"
DCC2_DEFAULT_ROUNDS = 10240


def _hex(data):
    return binascii.hexlify(data).decode('ascii')


def to_nt_hash(nt_hash):
    """
    Normalises an NT hash supplied as raw bytes or as a hex string.

    :param nt_hash: 16 bytes or 32 hex characters
    :return: The 16 byte NT hash
    """
    if isinstance(nt_hash, str):
        try:
            nt_hash = binascii.unhexlify(nt_hash)
        except (binascii.Error, ValueError) as err:
            raise InvalidConfigurationException("NT hash is not a valid hex "
                                                "string: %s" % str(err)) \
                from err

    if len(nt_hash) != 16:
        raise InvalidConfigurationException("NT hash must be 16 bytes, got %d"
                                            % len(nt_hash))
    return bytes(nt_hash)


def nt_hash(password):
    """
    [MS-NLMP] 3.3.1 NTLM v1 Authentication - NTOWFv1

    The MD4 of the UTF-16-LE encoded password.

    :param password: The password string
    :return: The 16 byte NT hash
    """
    md4 = MD4()
    md4.update(to_unicode(password))
    return md4.digest()


def nt_hash_hex(password):
    return _hex(nt_hash(password))


def lm_hash(password):
    """
    [MS-NLMP] 3.3.1 NTLM v1 Authentication - LMOWFv1

    The password is upper cased in the OEM code page, cut or null padded to
    14 bytes and each 7 byte half is used as a DES key to encrypt the
    constant KGS!@#$%. Anything past the 14th byte has no effect.

    :param password: The password string
    :return: The 16 byte LM hash
    """
    b_password = to_oem(password, upper=True)[:14].ljust(14, b"\x00")

    return des_encrypt(expand_des_key(b_password[:7]), LM_MAGIC) + \
        des_encrypt(expand_des_key(b_password[7:]), LM_MAGIC)


def lm_hash_hex(password):
    return _hex(lm_hash(password))


def dcc_hash_from_nt_hash(nt_hash, username):
    """
    Domain Cached Credentials (mscash), the MD4 of the NT hash followed by
    the lower cased username encoded as UTF-16-LE.

    :param nt_hash: The 16 byte NT hash of the password
    :param username: The account name, case is ignored
    :return: The 16 byte DCC hash
    """
    md4 = MD4()
    md4.update(to_nt_hash(nt_hash))
    md4.update(to_unicode(username.lower()))
    return md4.digest()


def dcc_hash(password, username):
    return dcc_hash_from_nt_hash(nt_hash(password), username)


def dcc_hash_hex(password, username):
    return _hex(dcc_hash(password, username))


def dcc_hashcat(password, username):
    """
    The DCC hash in the format expected by hashcat mode 1100,
    <hash>:<username> with the username lower cased.
    """
    return "%s:%s" % (dcc_hash_hex(password, username), username.lower())


def dcc2_hash_from_nt_hash(nt_hash, username, rounds=DCC2_DEFAULT_ROUNDS):
    """
    Domain Cached Credentials v2 (mscash2), PBKDF2-HMAC-SHA1 of the DCC hash
    salted with the lower cased UTF-16-LE username.

    :param nt_hash: The 16 byte NT hash of the password
    :param username: The account name, case is ignored
    :param rounds: The number of PBKDF2 iterations, Windows uses 10240
    :return: The 16 byte DCC2 hash
    """
    dcc = dcc_hash_from_nt_hash(nt_hash, username)
    salt = to_unicode(username.lower())
    return pbkdf2_hmac_sha1(dcc, salt, rounds, 16)


def dcc2_hash(username, password, rounds=DCC2_DEFAULT_ROUNDS):
    return dcc2_hash_from_nt_hash(nt_hash(password), username, rounds)


def dcc2_hashcat(username, password, rounds=DCC2_DEFAULT_ROUNDS):
    """
    The DCC2 hash in the format expected by hashcat mode 2100,
    $DCC2$<rounds>#<username>#<hash>. The username keeps the case it was
    given with even though the hash itself is computed on the lower case
    form.
    """
    return "$DCC2$%d#%s#%s" % (rounds, username,
                               _hex(dcc2_hash(username, password, rounds)))
