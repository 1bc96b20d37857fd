# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import base64
import re
import requests

import pytest

from manticore_ntlm.asn_structures import SPNEGOMechs, SPNEGONegState
from manticore_ntlm.auth import AuthState
from manticore_ntlm.exceptions import AuthenticationException
from manticore_ntlm.http_auth import HttpNegotiateAuth
from manticore_ntlm.messages import Authenticate, AvId, Challenge, \
    Negotiate, NegotiateFlags, TargetInfo
from manticore_ntlm.spnego import create_neg_token_resp, extract_inner_token

NEGOTIATE_PATTERN = re.compile(r"Negotiate ([^,\s]*)", re.I)


class FakeRaw(object):

    def __init__(self):
        self.released = False

    def release_conn(self):
        self.released = True


class FakeServer(object):
    """
    Answers the requests sent through response.connection.send like a
    server that accepts NTLM inside SPNEGO.
    """

    def __init__(self, accept=True, final_token=True):
        self.accept = accept
        self.final_token = final_token
        self.requests = []
        self.negotiate = None
        self.authenticate = None

    def response(self, request, status_code, auth_header=None):
        response = requests.Response()
        response.status_code = status_code
        response.url = request.url
        response.request = request
        response.connection = self
        response.raw = FakeRaw()
        response._content = b""
        if auth_header is not None:
            response.headers['www-authenticate'] = auth_header
        return response

    def send(self, request, **kwargs):
        self.requests.append(request)
        header = request.headers['Authorization']
        token = base64.b64decode(header.split(b" ", 1)[1])
        inner = extract_inner_token(token)

        if self.negotiate is None:
            self.negotiate = Negotiate.unpack(inner)
            target_info = TargetInfo()
            target_info.append(AvId.nb_domain_name, "DOMAIN")
            challenge = Challenge(
                NegotiateFlags.unicode | NegotiateFlags.ntlm |
                NegotiateFlags.extended_session_security |
                NegotiateFlags.target_info,
                b"\x01\x02\x03\x04\x05\x06\x07\x08",
                target_name="DOMAIN", target_info=target_info)
            out_token = create_neg_token_resp(
                response_token=challenge.pack(),
                neg_state=SPNEGONegState.ACCEPT_INCOMPLETE,
                supported_mech=SPNEGOMechs.NTLMSSP)
            return self.response(request, 401, "Negotiate %s" % base64.
                                 b64encode(out_token).decode('ascii'))

        self.authenticate = Authenticate.unpack(inner)
        if not self.accept:
            return self.response(request, 401, "Negotiate")

        auth_header = None
        if self.final_token:
            out_token = create_neg_token_resp(
                neg_state=SPNEGONegState.ACCEPT_COMPLETE)
            auth_header = "Negotiate %s" \
                % base64.b64encode(out_token).decode('ascii')
        return self.response(request, 200, auth_header)


def _initial_response(server):
    request = requests.Request('GET', 'http://server.domain.local/wsman')
    initial = server.response(request.prepare(), 401, "Negotiate")
    return initial


class TestHttpNegotiateAuth(object):

    def test_check_negotiate_supported(self):
        response = requests.Response()
        response.headers['www-authenticate'] = "Negotiate"
        HttpNegotiateAuth._check_negotiate_supported(response)

    def test_check_negotiate_supported_multiple(self):
        response = requests.Response()
        response.headers['www-authenticate'] = "Basic realm='WSMan', " \
                                               "negotiate"
        HttpNegotiateAuth._check_negotiate_supported(response)

    def test_check_negotiate_supported_fail(self):
        response = requests.Response()
        response.headers['www-authenticate'] = "CredSSP"
        with pytest.raises(AuthenticationException) as exc:
            HttpNegotiateAuth._check_negotiate_supported(response)
        assert str(exc.value) == "The server did not response Negotiate " \
                                 "being an available authentication method " \
                                 "- actual: 'CredSSP'"

    def test_set_negotiate_token(self):
        request = requests.Request('GET', '')
        expected = b"Negotiate YWJj"
        HttpNegotiateAuth._set_negotiate_token(request, b"abc")
        actual = request.headers['Authorization']
        assert actual == expected

    def test_get_negotiate_token(self):
        response = requests.Response()
        response.headers['www-authenticate'] = "Negotiate YWJj"
        expected = b"abc"
        actual = HttpNegotiateAuth._get_negotiate_token(response,
                                                        NEGOTIATE_PATTERN,
                                                        "negotiate")
        assert actual == expected

    def test_get_negotiate_token_fail_no_header(self):
        response = requests.Response()
        with pytest.raises(AuthenticationException) as exc:
            HttpNegotiateAuth._get_negotiate_token(response,
                                                   NEGOTIATE_PATTERN,
                                                   "negotiate")
        assert str(exc.value) == "Server did not response with a Negotiate " \
                                 "token after step negotiate - actual ''"

    def test_get_negotiate_token_fail_no_negotiate_token(self):
        response = requests.Response()
        response.headers['www-authenticate'] = "NTLM YWJj"
        with pytest.raises(AuthenticationException) as exc:
            HttpNegotiateAuth._get_negotiate_token(response,
                                                   NEGOTIATE_PATTERN,
                                                   "negotiate")
        assert str(exc.value) == "Server did not response with a Negotiate " \
                                 "token after step negotiate - actual " \
                                 "'NTLM YWJj'"

    def test_get_negotiate_token_optional(self):
        response = requests.Response()
        response.headers['www-authenticate'] = "Negotiate"
        actual = HttpNegotiateAuth._get_negotiate_token(response,
                                                        NEGOTIATE_PATTERN,
                                                        None)
        assert actual is None

    def test_get_negotiate_token_invalid_base64(self):
        response = requests.Response()
        response.headers['www-authenticate'] = "Negotiate YWJ"
        with pytest.raises(AuthenticationException) as exc:
            HttpNegotiateAuth._get_negotiate_token(response,
                                                   NEGOTIATE_PATTERN,
                                                   "negotiate")
        assert str(exc.value).startswith("Server Negotiate token is not "
                                         "valid base64")

    def test_call_registers_hook(self):
        auth = HttpNegotiateAuth("user", password="pass")
        request = requests.Request('GET', 'http://server/').prepare()
        actual = auth(request)
        assert actual.headers['Connection'] == "Keep-Alive"
        assert auth.response_hook in actual.hooks['response']

    def test_response_hook_ignores_success(self):
        auth = HttpNegotiateAuth("user", password="pass")
        response = requests.Response()
        response.status_code = 200
        assert auth.response_hook(response) is response
        assert auth.contexts == {}


class TestHttpNegotiateAuthExchange(object):

    def test_exchange(self):
        server = FakeServer()
        initial = _initial_response(server)
        auth = HttpNegotiateAuth("DOMAIN\\User", password="Password",
                                 workstation="ws")

        actual = auth.response_hook(initial)

        assert actual.status_code == 200
        assert initial.raw.released
        assert len(server.requests) == 2
        assert server.negotiate.domain_name == "DOMAIN"
        assert server.authenticate.username == "User"
        assert server.authenticate.domain_name == "DOMAIN"
        assert server.authenticate.workstation == "WS"
        assert len(server.authenticate.nt_challenge_response) > 24

        context = auth.contexts['server.domain.local']
        assert context.state == AuthState.AUTHENTICATED
        assert context.complete

        header = server.requests[1].headers['Authorization']
        assert header.startswith(b"Negotiate oY")

    def test_exchange_nt_hash(self):
        server = FakeServer(final_token=False)
        auth = HttpNegotiateAuth(
            "User", domain="DOMAIN",
            nt_hash="a4f49c406510bdcab6824ee7c30fd852")

        actual = auth.response_hook(_initial_response(server))

        assert actual.status_code == 200
        assert server.authenticate.username == "User"
        assert auth.contexts['server.domain.local'].complete

    def test_exchange_rejected(self):
        server = FakeServer(accept=False)
        auth = HttpNegotiateAuth("User", password="Wrong")
        with pytest.raises(AuthenticationException) as exc:
            auth.response_hook(_initial_response(server))
        assert str(exc.value) == "Server rejected the NTLM AUTHENTICATE " \
                                 "message for User"

    def test_exchange_not_supported(self):
        server = FakeServer()
        initial = _initial_response(server)
        initial.headers['www-authenticate'] = "Basic realm='server'"
        auth = HttpNegotiateAuth("User", password="Password")
        with pytest.raises(AuthenticationException):
            auth.response_hook(initial)
        assert server.requests == []

    def test_exchange_missing_challenge(self):
        server = FakeServer()

        def send(request, **kwargs):
            server.requests.append(request)
            return server.response(request, 401, "Negotiate")

        server.send = send
        auth = HttpNegotiateAuth("User", password="Password")
        with pytest.raises(AuthenticationException) as exc:
            auth.response_hook(_initial_response(server))
        assert str(exc.value) == "Server did not response with a Negotiate " \
                                 "token after step negotiate - actual " \
                                 "'Negotiate'"
