# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import logging

from logging import NullHandler

from manticore_ntlm.auth import AuthState, NTLMAuthContext
from manticore_ntlm.http_auth import HttpNegotiateAuth


logger = logging.getLogger(__name__)
logger.addHandler(NullHandler())

__all__ = ('AuthState', 'HttpNegotiateAuth', 'NTLMAuthContext')
