# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from enum import IntEnum

from pyasn1.type.constraint import SingleValueConstraint
from pyasn1.type.namedtype import NamedType, NamedTypes, OptionalNamedType
from pyasn1.type.namedval import NamedValues
from pyasn1.type.tag import Tag, tagClassContext, tagFormatConstructed
from pyasn1.type.univ import BitString, Choice, Enumerated, \
    ObjectIdentifier, OctetString, Sequence, SequenceOf


def _context_tag(number):
    return Tag(tagClassContext, tagFormatConstructed, number)


class SPNEGOMechs(object):
    SPNEGO = ObjectIdentifier('1.3.6.1.5.5.2')
    KRB5 = ObjectIdentifier('1.2.840.113554.1.2.2')
    NTLMSSP = ObjectIdentifier('1.3.6.1.4.1.311.2.2.10')


class SPNEGONegState(IntEnum):
    ACCEPT_COMPLETE = 0
    ACCEPT_INCOMPLETE = 1
    REJECT = 2
    REQUEST_MIC = 3


class MechType(ObjectIdentifier):
    """
    [RFC-4178] 4.1. Mechanism Types

    MechType ::= OBJECT IDENTIFIER
    """
    pass


class MechTypeList(SequenceOf):
    """
    [RFC-4178] 4.1. Mechanism Types

    MechTypeList ::= SEQUENCE OF MechType
    """
    componentType = MechType()


class ContextFlags(BitString):
    """
    [RFC-4178] 4.2.1. negTokenInit ContextFlags

    Not sent by this package, only defined so a negTokenInit carrying them
    can be decoded.
    """
    namedValues = NamedValues(
        ('delegFlag', 0),
        ('mutualFlag', 1),
        ('replayFlag', 2),
        ('sequenceFlag', 3),
        ('anonFlag', 4),
        ('confFlag', 5),
        ('integFlag', 6)
    )


class NegState(Enumerated):
    """
    [RFC-4178] 4.2.2. negTokenResp - negState

    NegState ::= ENUMERATED {
        accept-completed (0),
        accept-incomplete (1),
        reject (2),
        request-mic (3)
    }
    """
    namedValues = NamedValues(
        ('accept-complete', int(SPNEGONegState.ACCEPT_COMPLETE)),
        ('accept-incomplete', int(SPNEGONegState.ACCEPT_INCOMPLETE)),
        ('reject', int(SPNEGONegState.REJECT)),
        ('request-mic', int(SPNEGONegState.REQUEST_MIC))
    )
    subtypeSpec = Enumerated.subtypeSpec + SingleValueConstraint(
        *[int(state) for state in SPNEGONegState]
    )


class NegTokenInit(Sequence):
    """
    [RFC-4178] 4.2.1. negTokenInit

    Sent by the initiator with the list of mechanisms it supports and the
    first token of the preferred one.

    NegTokenInit ::= SEQUENCE {
        mechTypes   [0] MechTypeList,
        reqFlags    [1] ContextFlags OPTIONAL,
        mechToken   [2] OCTET STRING OPTIONAL,
        mechListMIC [3] OCTET STRING OPTIONAL
    }
    """
    componentType = NamedTypes(
        NamedType(
            'mechTypes', MechTypeList().subtype(explicitTag=_context_tag(0))
        ),
        OptionalNamedType(
            'reqFlags', ContextFlags().subtype(explicitTag=_context_tag(1))
        ),
        OptionalNamedType(
            'mechToken', OctetString().subtype(explicitTag=_context_tag(2))
        ),
        OptionalNamedType(
            'mechListMIC', OctetString().subtype(explicitTag=_context_tag(3))
        )
    )


class NegTokenResp(Sequence):
    """
    [RFC-4178] 4.2.2. negTokenResp

    Every message after the negTokenInit, in both directions.

    NegTokenResp ::= SEQUENCE {
        negState        [0] NegState OPTIONAL,
        supportedMech   [1] MechType OPTIONAL,
        responseToken   [2] OCTET STRING OPTIONAL,
        mechListMIC     [3] OCTET STRING OPTIONAL
    }
    """
    componentType = NamedTypes(
        OptionalNamedType(
            'negState', NegState().subtype(explicitTag=_context_tag(0))
        ),
        OptionalNamedType(
            'supportedMech', MechType().subtype(explicitTag=_context_tag(1))
        ),
        OptionalNamedType(
            'responseToken', OctetString().subtype(
                explicitTag=_context_tag(2)
            )
        ),
        OptionalNamedType(
            'mechListMIC', OctetString().subtype(explicitTag=_context_tag(3))
        )
    )


class NegotiationToken(Choice):
    """
    [RFC-4178] 4.2. Negotiation Tokens

    NegotiationToken ::= CHOICE {
        negTokenInit    [0] NegTokenInit,
        negTokenResp    [1] NegTokenResp
    }
    """
    componentType = NamedTypes(
        NamedType(
            'negTokenInit', NegTokenInit().subtype(
                explicitTag=_context_tag(0)
            )
        ),
        NamedType(
            'negTokenResp', NegTokenResp().subtype(
                explicitTag=_context_tag(1)
            )
        )
    )
