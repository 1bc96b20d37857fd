# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import binascii
import logging

from collections import namedtuple

from pyasn1.codec.der import decoder, encoder
from pyasn1.error import PyAsn1Error

from manticore_ntlm.asn_helper import is_gss_token, unwrap_gss_token, \
    wrap_gss_token
from manticore_ntlm.asn_structures import NegotiationToken, SPNEGOMechs, \
    SPNEGONegState
from manticore_ntlm.exceptions import AuthenticationException, \
    MalformedSpnegoException, NoInnerTokenException

log = logging.getLogger(__name__)

NegTokenRespInfo = namedtuple('NegTokenRespInfo', ['neg_state',
                                                   'supported_mech',
                                                   'response_token',
                                                   'mech_list_mic'])


def create_neg_token_init(mech_token, mech_types=None):
    """
    Wraps the first mechanism token in a negTokenInit preceded by the
    GSS-API application header.

    :param mech_token: The inner token, the NTLM NEGOTIATE message
    :param mech_types: List of mechanism OIDs to advertise, defaults to NTLM
        only
    :return: The InitialContextToken bytes
    """
    negotiation_token = NegotiationToken()
    for mech in mech_types or [SPNEGOMechs.NTLMSSP]:
        negotiation_token['negTokenInit']['mechTypes'].append(mech)
    negotiation_token['negTokenInit']['mechToken'] = mech_token

    return wrap_gss_token(encoder.encode(negotiation_token))


def create_neg_token_resp(response_token=None, neg_state=None,
                          supported_mech=None, mech_list_mic=None):
    """
    Creates a negTokenResp, these are sent without the GSS-API application
    header.

    :param response_token: The inner token, the NTLM AUTHENTICATE message
    :param neg_state: The SPNEGONegState to set, omitted when None
    :param supported_mech: The mechanism OID to set, omitted when None
    :param mech_list_mic: The mechListMIC bytes, omitted when None
    :return: The NegotiationToken bytes
    """
    negotiation_token = NegotiationToken()
    neg_token_resp = negotiation_token['negTokenResp']
    if neg_state is not None:
        neg_token_resp['negState'] = int(neg_state)
    if supported_mech is not None:
        neg_token_resp['supportedMech'] = str(supported_mech)
    if response_token is not None:
        neg_token_resp['responseToken'] = response_token
    if mech_list_mic is not None:
        neg_token_resp['mechListMIC'] = mech_list_mic

    return encoder.encode(negotiation_token)


def _decode_negotiation_token(data):
    if is_gss_token(data):
        data = unwrap_gss_token(data)

    try:
        token, remaining = decoder.decode(data, asn1Spec=NegotiationToken())
    except PyAsn1Error as err:
        raise MalformedSpnegoException("Failed to decode SPNEGO token: %s"
                                       % str(err)) from err

    if remaining:
        raise MalformedSpnegoException("SPNEGO token has %d trailing bytes"
                                       % len(remaining))
    return token


def _get_value(component, convert):
    return convert(component) if component.isValue else None


def parse_neg_token_resp(data):
    """
    Decodes the negTokenResp sent by the server. A GSS-API application
    header in front of the token is skipped when present.

    :param data: The SPNEGO token bytes
    :return: NegTokenRespInfo with the fields that were set, None for the
        others
    """
    token = _decode_negotiation_token(data)
    if token.getName() != 'negTokenResp':
        raise MalformedSpnegoException("Expecting a negTokenResp but got %s"
                                       % token.getName())

    neg_token_resp = token['negTokenResp']
    info = NegTokenRespInfo(
        neg_state=_get_value(neg_token_resp['negState'],
                             lambda v: SPNEGONegState(int(v))),
        supported_mech=_get_value(neg_token_resp['supportedMech'], str),
        response_token=_get_value(neg_token_resp['responseToken'], bytes),
        mech_list_mic=_get_value(neg_token_resp['mechListMIC'], bytes),
    )
    log.debug("SPNEGO negTokenResp state: %s, mech: %s"
              % (info.neg_state, info.supported_mech))

    if info.neg_state == SPNEGONegState.REJECT:
        raise AuthenticationException("Server rejected the SPNEGO "
                                      "negotiation")

    return info


def extract_inner_token(data):
    """
    Returns the mechanism token from either a negTokenInit or a
    negTokenResp.

    :param data: The SPNEGO token bytes, with or without the GSS-API
        application header
    :return: The inner mechanism token
    """
    token = _decode_negotiation_token(data)
    name = token.getName()

    if name == 'negTokenInit':
        inner = token['negTokenInit']['mechToken']
    else:
        inner = token['negTokenResp']['responseToken']

    if not inner.isValue:
        raise NoInnerTokenException("SPNEGO %s does not contain a mechanism "
                                    "token" % name)

    inner = bytes(inner)
    log.debug("SPNEGO %s inner token: %s"
              % (name, binascii.hexlify(inner).decode('ascii')))
    return inner
