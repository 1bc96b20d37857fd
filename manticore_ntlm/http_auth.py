# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import base64
import binascii
import logging
import re

from requests.auth import AuthBase
from urllib.parse import urlparse

from manticore_ntlm.auth import NTLMAuthContext
from manticore_ntlm.exceptions import AuthenticationException

log = logging.getLogger(__name__)


class HttpNegotiateAuth(AuthBase):

    def __init__(self, username, password=None, domain=None,
                 workstation=None, nt_hash=None, unicode=True):
        """
        Initialises the Negotiate auth handler for dealing with requests. The
        NTLM exchange is wrapped in SPNEGO and sent in the Authorization
        header.

        :param username: The username to auth with, DOMAIN\\USER sets the
            domain when domain isn't given
        :param password: The password for the user
        :param domain: The domain of the user
        :param workstation: The workstation name sent to the server
        :param nt_hash: The NT hash to authenticate with instead of the
            password
        :param unicode: Request UTF-16-LE strings in the NEGOTIATE message
        """
        self.username = username
        self.password = password
        self.domain = domain
        self.workstation = workstation
        self.nt_hash = nt_hash
        self.unicode = unicode
        self.contexts = {}

    def __call__(self, request):
        request.headers["Connection"] = "Keep-Alive"
        request.register_hook('response', self.response_hook)

        return request

    def response_hook(self, response, **kwargs):
        if response.status_code == 401:
            self._check_negotiate_supported(response)
            response = self.handle_401(response, **kwargs)

        return response

    def handle_401(self, response, **kwargs):
        host = urlparse(response.url).hostname
        context = NTLMAuthContext(self.username, password=self.password,
                                  domain=self.domain,
                                  workstation=self.workstation,
                                  nt_hash=self.nt_hash, unicode=self.unicode)
        self.contexts[host] = context

        context_gen = context.step()
        negotiate_regex = re.compile(r"Negotiate ([^,\s]*)", re.I)

        # loop through the context generator to exchange the tokens between
        # the client and the server until either an error occurs or we
        # reached the end of the exchange
        out_token, step_name = next(context_gen)
        while True:
            try:
                # consume content and release the original connection to allow
                # the new request to reuse the same one.
                response.content
                response.raw.release_conn()

                request = response.request.copy()
                self._set_negotiate_token(request, out_token)

                log.info("Sending Negotiate %s token to %s"
                         % (step_name, host))
                response = response.connection.send(request, **kwargs)
                if context.complete:
                    # the server may send a final token with the last response
                    in_token = self._get_negotiate_token(response,
                                                         negotiate_regex,
                                                         None)
                    if in_token is not None:
                        context.process_final_token(in_token)
                    if response.status_code == 401:
                        raise AuthenticationException(
                            "Server rejected the NTLM AUTHENTICATE message "
                            "for %s" % self.username)
                    break

                in_token = self._get_negotiate_token(response,
                                                     negotiate_regex,
                                                     step_name)
                out_token, step_name = context_gen.send(in_token)
            except StopIteration:
                break

        return response

    @staticmethod
    def _check_negotiate_supported(response):
        auth_supported = response.headers.get('www-authenticate', '')
        if 'NEGOTIATE' not in auth_supported.upper():
            error_msg = "The server did not response Negotiate being an " \
                        "available authentication method - actual: '%s'" \
                        % auth_supported
            raise AuthenticationException(error_msg)

    @staticmethod
    def _set_negotiate_token(request, token):
        encoded_token = base64.b64encode(token)
        negotiate_header = b"Negotiate " + encoded_token
        request.headers['Authorization'] = negotiate_header

    @staticmethod
    def _get_negotiate_token(response, pattern, step_name):
        """
        Returns the decoded token in the WWW-Authenticate header. When
        step_name is None the token is optional and None is returned when it
        is missing.
        """
        auth_header = response.headers.get('www-authenticate', '')
        token_match = pattern.search(auth_header)

        if not token_match:
            if step_name is None:
                return None
            error_msg = "Server did not response with a Negotiate token " \
                        "after step %s - actual '%s'" \
                        % (step_name, auth_header)
            raise AuthenticationException(error_msg)

        try:
            return base64.b64decode(token_match.group(1))
        except (binascii.Error, ValueError) as err:
            raise AuthenticationException("Server Negotiate token is not "
                                          "valid base64: %s" % str(err)) \
                from err
