# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import binascii
import logging
import struct

import pytest

from manticore_ntlm.asn_structures import SPNEGOMechs, SPNEGONegState
from manticore_ntlm.auth import AuthState, NTLMAuthContext, split_username
from manticore_ntlm.exceptions import AuthenticationException, \
    InvalidConfigurationException, MalformedNtlmException, \
    MissingSecretException, NoInnerTokenException, WrongStateException
from manticore_ntlm.messages import Authenticate, AvId, Challenge, \
    Negotiate, NegotiateFlags, TargetInfo, Version
from manticore_ntlm.responses import NTLMv2
from manticore_ntlm.spnego import create_neg_token_resp, extract_inner_token

SERVER_CHALLENGE = binascii.unhexlify("0123456789abcdef")
CLIENT_CHALLENGE = b"\xaa" * 8


def _context(**kwargs):
    values = dict(password="S3cretP@ss", domain="Domain", workstation="ws",
                  random_source=lambda n: b"\xaa" * n, clock=lambda: 0)
    values.update(kwargs)
    return NTLMAuthContext("User", **values)


def _challenge_token(flags=None, neg_state=SPNEGONegState.ACCEPT_INCOMPLETE):
    if flags is None:
        flags = NegotiateFlags.unicode | NegotiateFlags.ntlm | \
            NegotiateFlags.extended_session_security | \
            NegotiateFlags.target_info | NegotiateFlags.version
    target_info = TargetInfo()
    target_info.append(AvId.nb_domain_name, "Domain")
    target_info.append(AvId.nb_computer_name, "Server")
    target_info.append(AvId.timestamp, struct.pack("<Q", 0))
    challenge = Challenge(flags, SERVER_CHALLENGE, target_name="DOMAIN",
                          target_info=target_info,
                          version=Version.default())
    return create_neg_token_resp(response_token=challenge.pack(),
                                 neg_state=neg_state,
                                 supported_mech=SPNEGOMechs.NTLMSSP)


class TestSplitUsername(object):

    def test_username(self):
        assert split_username("username") == (None, "username")

    def test_netlogon_username(self):
        assert split_username("DOMAIN\\username") == ("DOMAIN", "username")

    def test_upn_username(self):
        assert split_username("username@DOMAIN.LOCAL") == \
            (None, "username@DOMAIN.LOCAL")


class TestNTLMAuthContextInit(object):

    def test_initial_state(self):
        context = _context()
        assert context.state == AuthState.INITIAL
        assert not context.complete
        assert context.negotiate_message is None
        assert context.challenge_message is None
        assert context.authenticate_message is None

    def test_domain_from_username(self):
        context = NTLMAuthContext("DOMAIN\\user", password="pass")
        assert context.domain == "DOMAIN"
        assert context.username == "user"

    def test_explicit_domain_wins(self):
        context = NTLMAuthContext("DOMAIN\\user", password="pass",
                                  domain="OTHER")
        assert context.domain == "OTHER"

    def test_no_domain(self):
        assert NTLMAuthContext("user", password="pass").domain == ""

    def test_missing_secret(self):
        with pytest.raises(MissingSecretException) as exc:
            NTLMAuthContext("user", password="")
        assert str(exc.value) == "Either a password or an NT hash must be " \
                                 "set for user"

    def test_invalid_nt_hash(self):
        with pytest.raises(InvalidConfigurationException):
            NTLMAuthContext("user", nt_hash="abcd")


class TestNTLMAuthContext(object):

    def test_create_negotiate_token(self):
        context = _context()
        token = context.create_negotiate_token()
        assert context.state == AuthState.NEGOTIATED
        assert token[:1] == b"\x60"

        inner = extract_inner_token(token)
        assert inner == context.negotiate_message
        negotiate = Negotiate.unpack(inner)
        assert negotiate.domain_name == "Domain"
        assert negotiate.workstation == "ws"
        assert negotiate.flags & NegotiateFlags.unicode

    def test_create_negotiate_token_oem(self):
        context = _context(unicode=False)
        negotiate = Negotiate.unpack(
            extract_inner_token(context.create_negotiate_token()))
        assert negotiate.flags & NegotiateFlags.oem
        assert negotiate.domain_name == "DOMAIN"

    def test_create_negotiate_token_twice(self):
        context = _context()
        context.create_negotiate_token()
        with pytest.raises(WrongStateException) as exc:
            context.create_negotiate_token()
        assert exc.value.state == AuthState.NEGOTIATED
        assert str(exc.value) == "Cannot create the NEGOTIATE token, " \
                                 "expecting state INITIAL (current state: " \
                                 "NEGOTIATED)"
        assert context.state == AuthState.FAILED

    def test_challenge_before_negotiate(self):
        context = _context()
        with pytest.raises(WrongStateException):
            context.process_challenge_token(_challenge_token())
        assert context.state == AuthState.FAILED

    def test_process_challenge_token(self):
        context = _context()
        context.create_negotiate_token()
        token = context.process_challenge_token(_challenge_token())

        assert context.state == AuthState.AUTHENTICATED
        assert context.complete
        assert context.challenge_message.server_challenge == \
            SERVER_CHALLENGE
        # negTokenResp without the GSS-API header
        assert token[:1] == b"\xa1"

        inner = extract_inner_token(token)
        assert inner == context.authenticate_message
        authenticate = Authenticate.unpack(inner)
        assert authenticate.username == "User"
        assert authenticate.domain_name == "DOMAIN"
        assert authenticate.workstation == "WS"
        assert authenticate.mic == b"\x00" * 16

        expected = NTLMv2("Domain", "User", SERVER_CHALLENGE,
                          password="S3cretP@ss",
                          client_challenge=CLIENT_CHALLENGE,
                          target_info=context.challenge_message.target_info
                          .pack(),
                          timestamp=0)
        assert authenticate.nt_challenge_response == expected.nt_response()
        assert authenticate.lm_challenge_response == expected.lm_response()

    def test_process_challenge_token_nt_hash(self):
        with_password = _context(password="Password")
        with_hash = _context(password=None,
                             nt_hash="a4f49c406510bdcab6824ee7c30fd852")
        tokens = []
        for context in (with_password, with_hash):
            context.create_negotiate_token()
            tokens.append(context.process_challenge_token(_challenge_token()))
        assert tokens[0] == tokens[1]

    def test_process_challenge_token_ntlmv1(self):
        context = _context(password="Password")
        context.create_negotiate_token()
        token = context.process_challenge_token(_challenge_token(
            flags=NegotiateFlags.unicode | NegotiateFlags.ntlm))
        authenticate = Authenticate.unpack(extract_inner_token(token))
        assert binascii.hexlify(authenticate.nt_challenge_response) == \
            b"67c43011f30298a2ad35ece64f16331c44bdbed927841f94"

    def test_process_challenge_reject(self):
        context = _context()
        context.create_negotiate_token()
        with pytest.raises(AuthenticationException):
            context.process_challenge_token(create_neg_token_resp(
                neg_state=SPNEGONegState.REJECT))
        assert context.state == AuthState.REJECTED

    def test_process_challenge_no_inner_token(self):
        context = _context()
        context.create_negotiate_token()
        with pytest.raises(NoInnerTokenException) as exc:
            context.process_challenge_token(create_neg_token_resp(
                neg_state=SPNEGONegState.ACCEPT_INCOMPLETE))
        assert str(exc.value) == "Server negTokenResp does not contain the " \
                                 "NTLM CHALLENGE"
        assert context.state == AuthState.FAILED

    def test_process_challenge_malformed(self):
        context = _context()
        context.create_negotiate_token()
        with pytest.raises(MalformedNtlmException):
            context.process_challenge_token(create_neg_token_resp(
                response_token=b"NTLMSSP\x00\x02\x00\x00\x00"))
        assert context.state == AuthState.FAILED

    def test_process_challenge_invalid_utf16(self):
        challenge = Challenge(NegotiateFlags.unicode | NegotiateFlags.ntlm,
                              SERVER_CHALLENGE, target_name="DOMAIN")
        b_data = bytearray(challenge.pack())
        b_data[12:16] = struct.pack("<HH", 1, 1)
        context = _context()
        context.create_negotiate_token()
        with pytest.raises(MalformedNtlmException) as exc:
            context.process_challenge_token(create_neg_token_resp(
                response_token=bytes(b_data)))
        assert str(exc.value).startswith("NTLM string is not valid "
                                         "UTF-16-LE: ")
        assert context.state == AuthState.FAILED
        assert context.authenticate_message is None

    def test_process_final_token(self):
        context = _context()
        context.create_negotiate_token()
        context.process_challenge_token(_challenge_token())
        context.process_final_token(create_neg_token_resp(
            neg_state=SPNEGONegState.ACCEPT_COMPLETE))
        assert context.state == AuthState.AUTHENTICATED

    def test_process_final_token_reject(self):
        context = _context()
        context.create_negotiate_token()
        context.process_challenge_token(_challenge_token())
        with pytest.raises(AuthenticationException):
            context.process_final_token(create_neg_token_resp(
                neg_state=SPNEGONegState.REJECT))
        assert context.state == AuthState.REJECTED
        assert not context.complete

    def test_process_final_token_before_authenticate(self):
        context = _context()
        with pytest.raises(WrongStateException):
            context.process_final_token(create_neg_token_resp(
                neg_state=SPNEGONegState.ACCEPT_COMPLETE))
        assert context.state == AuthState.FAILED

    def test_rejected_context_stays_rejected(self):
        context = _context()
        context.create_negotiate_token()
        with pytest.raises(AuthenticationException):
            context.process_challenge_token(create_neg_token_resp(
                neg_state=SPNEGONegState.REJECT))
        with pytest.raises(WrongStateException) as exc:
            context.process_challenge_token(_challenge_token())
        assert exc.value.state == AuthState.REJECTED
        assert context.state == AuthState.REJECTED

    def test_failed_context_cannot_restart(self):
        context = _context()
        with pytest.raises(WrongStateException):
            context.process_challenge_token(_challenge_token())
        with pytest.raises(WrongStateException) as exc:
            context.create_negotiate_token()
        assert exc.value.state == AuthState.FAILED
        assert context.state == AuthState.FAILED

    def test_step(self):
        context = _context()
        context_gen = context.step()

        out_token, step_name = next(context_gen)
        assert step_name == "negotiate"
        assert out_token[:1] == b"\x60"

        out_token, step_name = context_gen.send(_challenge_token())
        assert step_name == "authenticate"
        assert out_token[:1] == b"\xa1"
        assert context.complete

        with pytest.raises(StopIteration):
            context_gen.send(create_neg_token_resp(
                neg_state=SPNEGONegState.ACCEPT_COMPLETE))
        assert context.state == AuthState.AUTHENTICATED

    def test_step_without_final_token(self):
        context = _context()
        context_gen = context.step()
        next(context_gen)
        context_gen.send(_challenge_token())
        with pytest.raises(StopIteration):
            context_gen.send(None)
        assert context.complete

    def test_logging(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="manticore_ntlm"):
            context = _context()
            context.create_negotiate_token()
            context.process_challenge_token(_challenge_token())

        assert "moving from INITIAL to NEGOTIATED" in caplog.text
        assert "moving from CHALLENGED to AUTHENTICATED" in caplog.text
        assert "NTLM NEGOTIATE: 4e544c4d53535000" in caplog.text
        assert "S3cretP@ss" not in caplog.text
