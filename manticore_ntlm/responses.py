# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import binascii
import logging
import os
import struct

from abc import ABCMeta, abstractmethod

from manticore_ntlm.crypto import desl, filetime_now, hmac_md5, to_unicode
from manticore_ntlm.exceptions import InvalidChallengeException, \
    MissingSecretException
from manticore_ntlm.hashes import lm_hash, nt_hash, to_nt_hash

log = logging.getLogger(__name__)

CHALLENGE_SIZE = 8

# [MS-NLMP] 2.2.2.7 NTLMv2_CLIENT_CHALLENGE RespType and HiRespType
BLOB_SIGNATURE = b"\x01\x01" + b"\x00" * 6


def _check_challenge(name, challenge):
    if challenge is None or len(challenge) != CHALLENGE_SIZE:
        actual = "None" if challenge is None else str(len(challenge))
        raise InvalidChallengeException("The %s challenge must be %d bytes, "
                                        "got %s"
                                        % (name, CHALLENGE_SIZE, actual))
    return bytes(challenge)


def _resolve_nt_hash(password, secret_hash):
    # the NT hash wins when both are set, the password is only used to derive
    # one when it is missing
    if secret_hash:
        return to_nt_hash(secret_hash)
    elif password:
        return nt_hash(password)
    raise MissingSecretException("Either a password or an NT hash must be "
                                 "supplied to compute the response")


class ResponseProvider(object, metaclass=ABCMeta):

    @abstractmethod
    def lm_response(self):
        """
        The value placed in the LmChallengeResponse field of the
        AUTHENTICATE message.

        :return: The LM response bytes
        """
        pass  # pragma: no cover

    @abstractmethod
    def nt_response(self):
        """
        The value placed in the NtChallengeResponse field of the
        AUTHENTICATE message.

        :return: The NT response bytes
        """
        pass  # pragma: no cover


class NTLMv1(ResponseProvider):

    def __init__(self, domain, username, server_challenge, password=None,
                 nt_hash=None):
        """
        [MS-NLMP] 3.3.1 NTLM v1 Authentication

        Computes the 24 byte responses used when the server did not negotiate
        extended session security.

        :param domain: The domain of the user
        :param username: The username
        :param server_challenge: The 8 byte challenge from the CHALLENGE msg
        :param password: The password, used when nt_hash isn't set
        :param nt_hash: The NT hash as 16 bytes or a hex string
        """
        self.domain = domain
        self.username = username
        self.server_challenge = _check_challenge("server", server_challenge)
        self.password = password
        self.nt_hash = _resolve_nt_hash(password, nt_hash)

    def nt_response(self):
        return desl(self.nt_hash, self.server_challenge)

    def lm_response(self):
        # the LM hash can only be derived from the password itself
        if not self.password:
            raise MissingSecretException("The NTLMv1 LM response requires "
                                         "the password")
        return desl(lm_hash(self.password), self.server_challenge)

    def hash_hex(self):
        return binascii.hexlify(self.nt_response()).decode('ascii').upper()


class NTLMv2(ResponseProvider):

    def __init__(self, domain, username, server_challenge, password=None,
                 nt_hash=None, client_challenge=None, target_info=None,
                 timestamp=None, random_source=os.urandom,
                 clock=filetime_now):
        """
        [MS-NLMP] 3.3.2 NTLM v2 Authentication

        Computes the NTLMv2 and LMv2 responses. The ResponseKeyNT is derived
        once here and the client challenge and timestamp are fixed for the
        lifetime of the object so both responses are consistent with each
        other.

        :param domain: The domain of the user
        :param username: The username
        :param server_challenge: The 8 byte challenge from the CHALLENGE msg
        :param password: The password, used when nt_hash isn't set
        :param nt_hash: The NT hash as 16 bytes or a hex string
        :param client_challenge: An explicit 8 byte client challenge, when
            not set 8 bytes are read from random_source
        :param target_info: The raw target info bytes from the CHALLENGE msg
            to replay in the blob, when not set the UTF-16-LE domain is used
        :param timestamp: An explicit FILETIME for the blob, when not set
            clock() is called once
        :param random_source: Callable that takes a length and returns that
            many cryptographically secure random bytes
        :param clock: Callable that returns the current FILETIME
        """
        self.domain = domain or ""
        self.username = username
        self.server_challenge = _check_challenge("server", server_challenge)
        if client_challenge is None:
            client_challenge = random_source(CHALLENGE_SIZE)
        self.client_challenge = _check_challenge("client", client_challenge)
        self.nt_hash = _resolve_nt_hash(password, nt_hash)
        self.target_info = target_info
        self.timestamp = clock() if timestamp is None else timestamp

        # NTOWFv2
        identity = to_unicode(self.username.upper() + self.domain.upper())
        self.response_key_nt = hmac_md5(self.nt_hash, identity)

    def blob(self):
        """
        [MS-NLMP] 2.2.2.7 NTLMv2_CLIENT_CHALLENGE

        :return: The temp structure that is signed and appended to the
            NTProofStr
        """
        if self.target_info is not None:
            av_pairs = self.target_info
        else:
            av_pairs = to_unicode(self.domain)

        return BLOB_SIGNATURE + \
            struct.pack("<Q", self.timestamp) + \
            self.client_challenge + \
            b"\x00" * 4 + \
            av_pairs + \
            b"\x00" * 4

    def nt_proof_str(self):
        return hmac_md5(self.response_key_nt,
                        self.server_challenge + self.blob())

    def nt_response(self):
        return self.nt_proof_str() + self.blob()

    def lm_response(self):
        proof = hmac_md5(self.response_key_nt,
                         self.server_challenge + self.client_challenge)
        return proof + self.client_challenge

    def hashcat_string(self):
        """
        The response as username::domain:<server challenge>:<client
        challenge>:<NT response> with each value hex encoded.
        """
        return "%s::%s:%s:%s:%s" % (
            self.username,
            self.domain,
            binascii.hexlify(self.server_challenge).decode('ascii'),
            binascii.hexlify(self.client_challenge).decode('ascii'),
            binascii.hexlify(self.nt_response()).decode('ascii'),
        )


def ntlmv1_response(domain, username, server_challenge, password=None,
                    nt_hash=None):
    """
    Shortcut for the 24 byte NTLMv1 NT response.

    :param domain: The domain of the user
    :param username: The username
    :param server_challenge: The 8 byte server challenge
    :param password: The password, used when nt_hash isn't set
    :param nt_hash: The NT hash as 16 bytes or a hex string
    :return: The 24 byte response
    """
    return NTLMv1(domain, username, server_challenge, password=password,
                  nt_hash=nt_hash).nt_response()
