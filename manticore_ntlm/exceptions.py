# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)


class NTLMException(Exception):
    # Base class for every failure raised by this package
    pass


class InvalidConfigurationException(NTLMException):
    # Config option is invalid and illegal
    pass


class MalformedInputException(NTLMException):
    # Input bytes could not be decoded
    pass


class MalformedNtlmException(MalformedInputException):
    # An NTLM message is not structurally valid
    pass


class MessageTooShortException(MalformedNtlmException):
    pass


class InvalidSignatureException(MalformedNtlmException):
    pass


class InvalidMessageTypeException(MalformedNtlmException):

    @property
    def expected(self):
        return self.args[1]

    @property
    def actual(self):
        return self.args[2]

    def __init__(self, message, expected, actual):
        super(InvalidMessageTypeException, self).__init__(message, expected,
                                                          actual)

    def __str__(self):
        return self.args[0]


class TargetInfoTruncatedException(MalformedNtlmException):
    pass


class MalformedSpnegoException(MalformedInputException):
    # The SPNEGO/GSS-API envelope could not be decoded
    pass


class NoInnerTokenException(MalformedSpnegoException):
    pass


class InvalidChallengeException(NTLMException):
    # A server or client challenge is not exactly 8 bytes
    pass


class MissingSecretException(NTLMException):
    # Neither a password nor an NT hash is available for a response
    pass


class PaddingException(NTLMException):
    # PKCS#7 padding is invalid, never says where the check failed
    pass


class EmptyBufferException(PaddingException):
    pass


class Base64DecodeException(MalformedInputException):
    pass


class BlockAlignException(MalformedInputException):
    pass


class CipherInitException(NTLMException):
    pass


class AuthenticationException(NTLMException):
    # Authentication was rejected by the server
    pass


class WrongStateException(NTLMException):
    # A handshake step was invoked out of order

    @property
    def state(self):
        return self.args[1]

    def __init__(self, message, state):
        super(WrongStateException, self).__init__(message, state)

    def __str__(self):
        return "%s (current state: %s)" % (self.args[0], self.state.name)
