# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import struct

from manticore_ntlm.exceptions import MalformedSpnegoException

ASN1_TYPE_OBJECT_IDENTIFIER = 0x06
ASN1_TYPE_GSS_APPLICATION = 0x60

# DER encoding of the SPNEGO OID 1.3.6.1.5.5.2 including the tag and length
SPNEGO_OID_DER = b"\x06\x06\x2b\x06\x01\x05\x05\x02"


def pack_asn1_length(length):
    """
    Encodes a DER length, the short form is used up to 127 and the long form
    0x80|N followed by N big endian bytes after that.

    :param length: The length to encode
    :return: The DER length octets
    """
    if length <= 0x7f:
        return struct.pack('B', length)

    b_length = length.to_bytes((length.bit_length() + 7) // 8, 'big')
    return struct.pack('B', 0x80 | len(b_length)) + b_length


def pack_asn1(data):
    """
    Packs the DER length and value elements for the value passed in.

    :param data: The data to pack
    :return: The DER length octets followed by data
    """
    return pack_asn1_length(len(data)) + data


def unpack_asn1_length(data, offset=0):
    """
    Decodes a DER length starting at offset.

    :param data: The byte string containing the length
    :param offset: The offset of the first length octet
    :return: tuple
        int: The decoded length
        int: The number of octets the length used
    """
    if offset >= len(data):
        raise MalformedSpnegoException("ASN.1 length octet missing at offset "
                                       "%d" % offset)

    first_octet = data[offset]
    if not first_octet & 0x80:
        return first_octet, 1

    length_octets = first_octet & 0x7f
    if length_octets == 0:
        raise MalformedSpnegoException("Indefinite ASN.1 lengths are not "
                                       "valid DER")
    if offset + 1 + length_octets > len(data):
        raise MalformedSpnegoException("ASN.1 long form length needs %d "
                                       "octets but only %d remain"
                                       % (length_octets,
                                          len(data) - offset - 1))

    value = int.from_bytes(data[offset + 1:offset + 1 + length_octets], 'big')
    return value, 1 + length_octets


def unpack_asn1(data):
    """
    Unpacks a single TLV from the start of data.

    :param data: The full ASN.1 structure to unpack including the type octet
    :return: tuple
        bytes: The value element unpacked from the ASN.1 structure
        int: Octet size of the type, length and value
    """
    # the type octet is always a single octet for our purposes
    value_length, length_octets = unpack_asn1_length(data, 1)

    total_octets = 1 + length_octets + value_length
    if total_octets > len(data):
        raise MalformedSpnegoException("ASN.1 value of %d octets extends past "
                                       "the %d byte buffer"
                                       % (value_length, len(data)))

    return data[1 + length_octets:total_octets], total_octets


def is_gss_token(data):
    return len(data) > 0 and data[0] == ASN1_TYPE_GSS_APPLICATION


def wrap_gss_token(inner_token):
    """
    [RFC-2743] 3.1. Mechanism-Independent Token Format

    Prefixes the inner token with the application header and the SPNEGO OID.

    :param inner_token: The DER encoded NegotiationToken
    :return: The InitialContextToken bytes
    """
    return struct.pack('B', ASN1_TYPE_GSS_APPLICATION) + \
        pack_asn1(SPNEGO_OID_DER + inner_token)


def unwrap_gss_token(data):
    """
    Strips the application header and the SPNEGO OID from a token.

    :param data: The InitialContextToken bytes
    :return: The inner NegotiationToken bytes
    """
    if not is_gss_token(data):
        raise MalformedSpnegoException("GSS-API token must start with 0x60, "
                                       "got 0x%02x"
                                       % (data[0] if data else 0))

    value, total_octets = unpack_asn1(data)
    if total_octets != len(data):
        raise MalformedSpnegoException("GSS-API token has %d trailing bytes"
                                       % (len(data) - total_octets))

    if len(value) < 1 or value[0] != ASN1_TYPE_OBJECT_IDENTIFIER:
        raise MalformedSpnegoException("GSS-API token does not start with a "
                                       "mechanism OID")

    _, oid_octets = unpack_asn1(value)
    if value[:oid_octets] != SPNEGO_OID_DER:
        raise MalformedSpnegoException("GSS-API token mechanism is not "
                                       "SPNEGO")

    return value[oid_octets:]
