# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import binascii
import enum
import logging
import os
import typing

from manticore_ntlm.crypto import filetime_now
from manticore_ntlm.exceptions import AuthenticationException, \
    MissingSecretException, NoInnerTokenException, NTLMException, \
    WrongStateException
from manticore_ntlm.hashes import to_nt_hash
from manticore_ntlm.messages import Challenge, create_authenticate_message, \
    create_negotiate_message
from manticore_ntlm.spnego import create_neg_token_init, \
    create_neg_token_resp, parse_neg_token_resp

log = logging.getLogger(__name__)


class AuthState(enum.Enum):
    INITIAL = "initial"
    NEGOTIATED = "negotiated"
    CHALLENGED = "challenged"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    FAILED = "failed"


def _hex(data: bytes) -> str:
    return binascii.hexlify(data).decode('ascii')


def split_username(username: str) -> typing.Tuple[typing.Optional[str], str]:
    """
    Splits a DOMAIN\\user username into its parts, the domain is None when
    the username has no domain part.
    """
    try:
        domain, username = username.split("\\", 1)
    except ValueError:
        domain = None
    return domain, username


class NTLMAuthContext:

    def __init__(
        self,
        username: str,
        password: typing.Optional[str] = None,
        domain: typing.Optional[str] = None,
        workstation: typing.Optional[str] = None,
        nt_hash: typing.Optional[typing.Union[bytes, str]] = None,
        unicode: bool = True,
        random_source: typing.Callable[[int], bytes] = os.urandom,
        clock: typing.Callable[[], int] = filetime_now,
    ) -> None:
        """
        Client side of a single NTLM exchange wrapped in SPNEGO. The context
        only transforms tokens, sending them to the server is up to the
        caller. One context is used for one exchange and is not thread safe.
        Any failure, including a step called out of order, leaves the
        context in FAILED or REJECTED and it cannot be reused.

        :param username: The username, DOMAIN\\user sets the domain when
            domain isn't given
        :param password: The password of the user
        :param domain: The domain of the user
        :param workstation: The workstation name sent to the server
        :param nt_hash: The NT hash to use instead of the password, 16 bytes
            or a hex string
        :param unicode: Request UTF-16-LE strings in the NEGOTIATE message
        :param random_source: Callable returning n random bytes
        :param clock: Callable returning the current FILETIME
        """
        user_domain, username = split_username(username)
        self.username = username
        self.domain = domain if domain is not None else (user_domain or "")
        self.workstation = workstation
        self.unicode = unicode

        if not password and not nt_hash:
            raise MissingSecretException("Either a password or an NT hash "
                                         "must be set for %s" % username)
        self._password = password
        self._nt_hash = to_nt_hash(nt_hash) if nt_hash else None
        self._random_source = random_source
        self._clock = clock

        self.state = AuthState.INITIAL
        self.negotiate_message: typing.Optional[bytes] = None
        self.challenge_message: typing.Optional[Challenge] = None
        self.authenticate_message: typing.Optional[bytes] = None

    @property
    def complete(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    def create_negotiate_token(self) -> bytes:
        """
        Creates the SPNEGO negTokenInit that carries the NTLM NEGOTIATE
        message.

        :return: The token to send to the server
        """
        self._check_state(AuthState.INITIAL, "create the NEGOTIATE token")

        negotiate = create_negotiate_message(domain=self.domain,
                                             workstation=self.workstation,
                                             unicode=self.unicode)
        self.negotiate_message = negotiate.pack()
        log.debug("NTLM NEGOTIATE flags: 0x%08x" % int(negotiate.flags))
        log.debug("NTLM NEGOTIATE: %s" % _hex(self.negotiate_message))

        token = create_neg_token_init(self.negotiate_message)
        self._set_state(AuthState.NEGOTIATED)
        return token

    def process_challenge_token(self, token: bytes) -> bytes:
        """
        Parses the SPNEGO token with the server's CHALLENGE message and
        creates the negTokenResp that carries the AUTHENTICATE message.

        :param token: The token received from the server
        :return: The token to send to the server
        """
        self._check_state(AuthState.NEGOTIATED,
                          "process the CHALLENGE token")

        try:
            resp = parse_neg_token_resp(token)
            if resp.response_token is None:
                raise NoInnerTokenException("Server negTokenResp does not "
                                            "contain the NTLM CHALLENGE")

            log.debug("NTLM CHALLENGE: %s" % _hex(resp.response_token))
            self.challenge_message = Challenge.unpack(resp.response_token)
            log.debug("NTLM CHALLENGE flags: 0x%08x"
                      % int(self.challenge_message.flags))
            self._set_state(AuthState.CHALLENGED)

            authenticate = create_authenticate_message(
                self.challenge_message, self.username,
                password=self._password, domain=self.domain,
                workstation=self.workstation, nt_hash=self._nt_hash,
                random_source=self._random_source, clock=self._clock)
            self.authenticate_message = authenticate.pack()
        except AuthenticationException:
            self._set_state(AuthState.REJECTED)
            raise
        except NTLMException:
            self._set_state(AuthState.FAILED)
            raise

        log.debug("NTLM AUTHENTICATE: %s" % _hex(self.authenticate_message))
        out_token = create_neg_token_resp(
            response_token=self.authenticate_message)
        self._set_state(AuthState.AUTHENTICATED)
        return out_token

    def process_final_token(self, token: bytes) -> None:
        """
        Checks the optional last negTokenResp from the server, a reject
        moves the context to REJECTED.

        :param token: The token received from the server
        """
        self._check_state(AuthState.AUTHENTICATED, "process the final token")
        try:
            parse_neg_token_resp(token)
        except AuthenticationException:
            self._set_state(AuthState.REJECTED)
            raise
        except NTLMException:
            self._set_state(AuthState.FAILED)
            raise

    def step(self) -> typing.Generator[typing.Tuple[bytes, str], bytes, None]:
        """
        Generator that yields each token to send to the server with the name
        of the step that produced it. The server's reply to each token is
        sent back in with send().
        """
        in_token = yield self.create_negotiate_token(), "negotiate"
        in_token = yield self.process_challenge_token(in_token), "authenticate"
        if in_token:
            self.process_final_token(in_token)

    def _check_state(self, expected: AuthState, action: str) -> None:
        if self.state != expected:
            current = self.state
            # a rejection stays a rejection, anything else becomes a failure
            if current != AuthState.REJECTED:
                self._set_state(AuthState.FAILED)
            raise WrongStateException("Cannot %s, expecting state %s"
                                      % (action, expected.name), current)

    def _set_state(self, state: AuthState) -> None:
        log.info("NTLM context for %s moving from %s to %s"
                 % (self.username, self.state.name, state.name))
        self.state = state
