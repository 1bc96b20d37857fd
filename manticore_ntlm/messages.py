# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import io
import logging
import os
import struct

from collections import namedtuple
from enum import IntEnum, IntFlag

from manticore_ntlm.crypto import OEM_ENCODING, filetime_now, to_oem, \
    to_unicode
from manticore_ntlm.exceptions import InvalidMessageTypeException, \
    InvalidSignatureException, MalformedNtlmException, \
    MessageTooShortException, TargetInfoTruncatedException
from manticore_ntlm.responses import NTLMv1, NTLMv2

log = logging.getLogger(__name__)

NTLM_SIGNATURE = b"NTLMSSP\x00"

NEGOTIATE_HEADER_SIZE = 40
CHALLENGE_HEADER_SIZE = 56
AUTHENTICATE_HEADER_SIZE = 88

# minimum size of an AUTHENTICATE without the VERSION and MIC fields
AUTHENTICATE_MIN_SIZE = 64
# minimum size of a NEGOTIATE without the VERSION field
NEGOTIATE_MIN_SIZE = 32


class NegotiateFlags(IntFlag):
    """
    [MS-NLMP] 2.2.2.5 NEGOTIATE

    The flags used by the client and server to agree on the capabilities of
    the NTLM exchange.
    """
    key_56 = 0x80000000
    key_exch = 0x40000000
    key_128 = 0x20000000
    version = 0x02000000
    target_info = 0x00800000
    non_nt_session_key = 0x00400000
    identity = 0x00100000
    extended_session_security = 0x00080000
    target_type_server = 0x00020000
    target_type_domain = 0x00010000
    always_sign = 0x00008000
    oem_workstation_supplied = 0x00002000
    oem_domain_name_supplied = 0x00001000
    anonymous = 0x00000800
    ntlm = 0x00000200
    lm_key = 0x00000080
    datagram = 0x00000040
    seal = 0x00000020
    sign = 0x00000010
    request_target = 0x00000004
    oem = 0x00000002
    unicode = 0x00000001


class MessageType(IntEnum):
    negotiate = 1
    challenge = 2
    authenticate = 3


class AvId(IntEnum):
    """
    [MS-NLMP] 2.2.2.1 AV_PAIR

    The AvId values that can appear in the TargetInfo of a CHALLENGE.
    """
    eol = 0x0000
    nb_computer_name = 0x0001
    nb_domain_name = 0x0002
    dns_computer_name = 0x0003
    dns_domain_name = 0x0004
    dns_tree_name = 0x0005
    flags = 0x0006
    timestamp = 0x0007
    single_host = 0x0008
    target_name = 0x0009
    channel_bindings = 0x000A


class AvFlags(IntFlag):
    constrained = 0x00000001
    mic = 0x00000002
    untrusted_spn = 0x00000004


AvPair = namedtuple('AvPair', ['av_id', 'value'])


class TargetInfo(object):
    """
    An ordered list of AV_PAIR entries. Values are kept as the raw bytes
    received so the structure can be replayed as is in the NTLMv2 blob, the
    accessors decode the ones this package reads.
    """
    _TEXT_IDS = (AvId.nb_computer_name, AvId.nb_domain_name,
                 AvId.dns_computer_name, AvId.dns_domain_name,
                 AvId.dns_tree_name, AvId.target_name)

    def __init__(self, pairs=None):
        self.pairs = list(pairs or [])

    def __iter__(self):
        return iter(self.pairs)

    def __len__(self):
        return len(self.pairs)

    def __eq__(self, other):
        if not isinstance(other, TargetInfo):
            return False
        return self.pairs == other.pairs

    def append(self, av_id, value):
        if isinstance(value, str):
            value = to_unicode(value)
        self.pairs.append(AvPair(av_id, bytes(value)))

    def get(self, av_id, default=None):
        for pair in self.pairs:
            if pair.av_id == av_id:
                return pair.value
        return default

    def get_text(self, av_id):
        value = self.get(av_id)
        if value is None:
            return None
        # all AV_PAIR strings are UTF-16-LE regardless of the negotiated
        # encoding
        return _decode_utf16(value)

    @property
    def flags(self):
        value = self.get(AvId.flags)
        if value is None or len(value) != 4:
            return AvFlags(0)
        return AvFlags(struct.unpack("<I", value)[0])

    @property
    def timestamp(self):
        value = self.get(AvId.timestamp)
        if value is None or len(value) != 8:
            return None
        return struct.unpack("<Q", value)[0]

    def pack(self):
        b_data = io.BytesIO()
        for av_id, value in self.pairs:
            # MsvAvEOL is only ever written once at the end
            if av_id == AvId.eol:
                continue
            b_data.write(struct.pack("<HH", av_id, len(value)))
            b_data.write(value)

        b_data.write(struct.pack("<HH", AvId.eol, 0))
        return b_data.getvalue()

    @staticmethod
    def unpack(b_data):
        target_info = TargetInfo()
        offset = 0

        while offset < len(b_data):
            if offset + 4 > len(b_data):
                raise TargetInfoTruncatedException("AV_PAIR header at offset "
                                                   "%d extends past the end "
                                                   "of the target info"
                                                   % offset)
            av_id, av_len = struct.unpack("<HH", b_data[offset:offset + 4])
            offset += 4

            if av_id == AvId.eol:
                break

            if offset + av_len > len(b_data):
                raise TargetInfoTruncatedException("AV_PAIR %d value of %d "
                                                   "bytes extends past the "
                                                   "end of the target info"
                                                   % (av_id, av_len))

            try:
                av_id = AvId(av_id)
            except ValueError:
                # unknown ids are kept so they can be replayed
                pass
            target_info.pairs.append(AvPair(av_id,
                                            bytes(b_data[offset:offset +
                                                         av_len])))
            offset += av_len

        return target_info


class Version(object):

    def __init__(self, major=0, minor=0, build=0, revision=0x0F):
        """
        [MS-NLMP] 2.2.2.10 VERSION

        The OS version information, it is only used for debugging and never
        changes how the messages are processed.

        :param major: The major version of the OS
        :param minor: The minor version of the OS
        :param build: The build number of the OS
        :param revision: The NTLMSSP revision, should be 15
        """
        self.major = major
        self.minor = minor
        self.build = build
        self.reserved = b"\x00" * 3
        self.revision = revision

    def __str__(self):
        return "%d.%d.%d.%d" % (self.major, self.minor, self.build,
                                self.revision)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return False
        return (self.major, self.minor, self.build, self.revision) == \
            (other.major, other.minor, other.build, other.revision)

    def pack(self):
        return struct.pack("<BBH", self.major, self.minor, self.build) + \
            self.reserved + struct.pack("B", self.revision)

    @staticmethod
    def default():
        return Version(major=10, minor=0, build=18362, revision=0x0F)

    @staticmethod
    def unpack(b_data):
        if len(b_data) < 8:
            raise MessageTooShortException("VERSION structure must be 8 "
                                           "bytes, got %d" % len(b_data))

        major, minor, build = struct.unpack("<BBH", b_data[:4])
        version = Version(major=major, minor=minor, build=build,
                          revision=struct.unpack("B", b_data[7:8])[0])
        # reserved bytes are ignored on receipt but kept for inspection
        version.reserved = bytes(b_data[4:7])
        return version


class _PayloadBuilder(object):
    """
    Appends variable length fields to the payload of a message and returns
    the length/max length/offset descriptor for each one. The offset is
    tracked here so the descriptors always point at the data just added.
    """

    def __init__(self, offset):
        self._offset = offset
        self._payload = io.BytesIO()

    def add(self, data):
        data = data or b""
        field = struct.pack("<HHI", len(data), len(data), self._offset)
        self._payload.write(data)
        self._offset += len(data)
        return field

    def getvalue(self):
        return self._payload.getvalue()


def _unpack_payload(b_data, field_offset):
    if field_offset + 8 > len(b_data):
        raise MessageTooShortException("Field descriptor at offset %d "
                                       "extends past the end of the message"
                                       % field_offset)

    length, _, offset = struct.unpack("<HHI",
                                      b_data[field_offset:field_offset + 8])
    if length == 0:
        return None

    if offset + length > len(b_data):
        raise MessageTooShortException("Field at offset %d with length %d "
                                       "extends past the end of the %d byte "
                                       "message"
                                       % (offset, length, len(b_data)))
    return bytes(b_data[offset:offset + length])


def _check_header(b_data, message_type, min_size):
    name = message_type.name.upper()
    if len(b_data) < min_size:
        raise MessageTooShortException("NTLM %s message must be at least %d "
                                       "bytes, got %d"
                                       % (name, min_size, len(b_data)))

    if b_data[:8] != NTLM_SIGNATURE:
        raise InvalidSignatureException("Invalid NTLM %s signature" % name)

    actual = struct.unpack("<I", b_data[8:12])[0]
    if actual != message_type:
        raise InvalidMessageTypeException("Invalid NTLM %s message type %d, "
                                          "expecting %d"
                                          % (name, actual, message_type),
                                          int(message_type), actual)


def _decode_utf16(b_data):
    try:
        return b_data.decode('utf-16-le')
    except UnicodeDecodeError as err:
        raise MalformedNtlmException("NTLM string is not valid UTF-16-LE: %s"
                                     % str(err)) from err


def _get_codec(flags):
    if flags & NegotiateFlags.unicode:
        return to_unicode, _decode_utf16
    return to_oem, lambda b: b.decode(OEM_ENCODING, errors='replace')


def _decode(value, decoder):
    return None if value is None else decoder(value)


class Negotiate(object):

    def __init__(self, flags, domain_name=None, workstation=None,
                 version=None):
        """
        [MS-NLMP] 2.2.1.1 NEGOTIATE_MESSAGE

        :param flags: The NegotiateFlags requested by the client
        :param domain_name: The domain of the client
        :param workstation: The workstation name of the client
        :param version: The Version of the client
        """
        self.flags = NegotiateFlags(flags)
        self.domain_name = domain_name
        self.workstation = workstation
        self.version = version

    def pack(self):
        flags = self.flags
        if flags & NegotiateFlags.unicode:
            encode = to_unicode
        else:
            encode = lambda v: to_oem(v, upper=True)  # noqa: E731

        payload = _PayloadBuilder(NEGOTIATE_HEADER_SIZE)

        b_domain = None
        if self.domain_name:
            flags |= NegotiateFlags.oem_domain_name_supplied
            b_domain = encode(self.domain_name)
        b_domain_field = payload.add(b_domain)

        b_workstation = None
        if self.workstation:
            flags |= NegotiateFlags.oem_workstation_supplied
            b_workstation = encode(self.workstation)
        b_workstation_field = payload.add(b_workstation)

        b_version = self.version.pack() if self.version else b"\x00" * 8

        b_data = io.BytesIO()
        b_data.write(NTLM_SIGNATURE)
        b_data.write(struct.pack("<I", MessageType.negotiate))
        b_data.write(struct.pack("<I", flags))
        b_data.write(b_domain_field)
        b_data.write(b_workstation_field)
        b_data.write(b_version)

        return b_data.getvalue() + payload.getvalue()

    @staticmethod
    def unpack(b_data):
        _check_header(b_data, MessageType.negotiate, NEGOTIATE_MIN_SIZE)

        flags = NegotiateFlags(struct.unpack("<I", b_data[12:16])[0])
        decoder = _get_codec(flags)[1]

        domain = _decode(_unpack_payload(b_data, 16), decoder)
        workstation = _decode(_unpack_payload(b_data, 24), decoder)

        version = None
        if flags & NegotiateFlags.version and \
                len(b_data) >= NEGOTIATE_HEADER_SIZE:
            version = Version.unpack(b_data[32:40])

        return Negotiate(flags, domain_name=domain, workstation=workstation,
                         version=version)


class Challenge(object):

    def __init__(self, flags, server_challenge, target_name=None,
                 target_info=None, version=None):
        """
        [MS-NLMP] 2.2.1.2 CHALLENGE_MESSAGE

        :param flags: The NegotiateFlags chosen by the server
        :param server_challenge: The 8 byte server challenge
        :param target_name: The name of the server or domain
        :param target_info: The TargetInfo AV_PAIR list of the server
        :param version: The Version of the server
        """
        self.flags = NegotiateFlags(flags)
        self.server_challenge = server_challenge
        self.reserved = b"\x00" * 8
        self.target_name = target_name
        self.target_info = target_info
        self.version = version

    def pack(self):
        encode = _get_codec(self.flags)[0]
        payload = _PayloadBuilder(CHALLENGE_HEADER_SIZE)

        b_target_name = encode(self.target_name) if self.target_name else None
        b_target_name_field = payload.add(b_target_name)

        b_target_info = self.target_info.pack() if self.target_info \
            else None
        b_target_info_field = payload.add(b_target_info)

        b_version = self.version.pack() if self.version else b"\x00" * 8

        b_data = io.BytesIO()
        b_data.write(NTLM_SIGNATURE)
        b_data.write(struct.pack("<I", MessageType.challenge))
        b_data.write(b_target_name_field)
        b_data.write(struct.pack("<I", self.flags))
        b_data.write(self.server_challenge)
        b_data.write(self.reserved)
        b_data.write(b_target_info_field)
        b_data.write(b_version)

        return b_data.getvalue() + payload.getvalue()

    @staticmethod
    def unpack(b_data):
        _check_header(b_data, MessageType.challenge, CHALLENGE_HEADER_SIZE)

        flags = NegotiateFlags(struct.unpack("<I", b_data[20:24])[0])
        decoder = _get_codec(flags)[1]

        target_name = _decode(_unpack_payload(b_data, 12), decoder)
        server_challenge = bytes(b_data[24:32])

        target_info = None
        b_target_info = _unpack_payload(b_data, 40)
        if b_target_info is not None:
            target_info = TargetInfo.unpack(b_target_info)

        version = None
        if flags & NegotiateFlags.version:
            version = Version.unpack(b_data[48:56])

        challenge = Challenge(flags, server_challenge,
                              target_name=target_name,
                              target_info=target_info, version=version)
        challenge.reserved = bytes(b_data[32:40])
        return challenge


class Authenticate(object):

    def __init__(self, flags, lm_challenge_response, nt_challenge_response,
                 domain_name=None, username=None, workstation=None,
                 encrypted_session_key=None, version=None, mic=None):
        """
        [MS-NLMP] 2.2.1.3 AUTHENTICATE_MESSAGE

        The strings are encoded as they are set here, any case changes are
        done by the caller.

        :param flags: The NegotiateFlags of the exchange
        :param lm_challenge_response: The LmChallengeResponse bytes
        :param nt_challenge_response: The NtChallengeResponse bytes
        :param domain_name: The domain of the user
        :param username: The username
        :param workstation: The workstation name of the client
        :param encrypted_session_key: The EncryptedRandomSessionKey bytes
        :param version: The Version of the client, only written when the
            version flag is set
        :param mic: The 16 byte MIC, zeros are written when not set
        """
        self.flags = NegotiateFlags(flags)
        self.lm_challenge_response = lm_challenge_response
        self.nt_challenge_response = nt_challenge_response
        self.domain_name = domain_name
        self.username = username
        self.workstation = workstation
        self.encrypted_session_key = encrypted_session_key
        self.version = version
        self.mic = mic

    def pack(self):
        encode = _get_codec(self.flags)[0]
        payload = _PayloadBuilder(AUTHENTICATE_HEADER_SIZE)

        # the payload order is fixed, each descriptor points at its own data
        fields = [
            payload.add(self.lm_challenge_response),
            payload.add(self.nt_challenge_response),
            payload.add(encode(self.domain_name) if self.domain_name
                        else None),
            payload.add(encode(self.username) if self.username else None),
            payload.add(encode(self.workstation) if self.workstation
                        else None),
            payload.add(self.encrypted_session_key),
        ]

        b_version = b"\x00" * 8
        if self.flags & NegotiateFlags.version:
            b_version = (self.version or Version.default()).pack()

        b_data = io.BytesIO()
        b_data.write(NTLM_SIGNATURE)
        b_data.write(struct.pack("<I", MessageType.authenticate))
        for field in fields:
            b_data.write(field)
        b_data.write(struct.pack("<I", self.flags))
        b_data.write(b_version)
        b_data.write(self.mic or b"\x00" * 16)

        return b_data.getvalue() + payload.getvalue()

    @staticmethod
    def unpack(b_data):
        _check_header(b_data, MessageType.authenticate, AUTHENTICATE_MIN_SIZE)

        flags = NegotiateFlags(struct.unpack("<I", b_data[60:64])[0])
        decoder = _get_codec(flags)[1]

        lm_response = _unpack_payload(b_data, 12)
        nt_response = _unpack_payload(b_data, 20)
        domain = _decode(_unpack_payload(b_data, 28), decoder)
        username = _decode(_unpack_payload(b_data, 36), decoder)
        workstation = _decode(_unpack_payload(b_data, 44), decoder)
        session_key = _unpack_payload(b_data, 52)

        version = None
        if flags & NegotiateFlags.version and len(b_data) >= 72:
            version = Version.unpack(b_data[64:72])

        # the MIC is only there when the payload starts after it
        offsets = [struct.unpack("<I", b_data[o + 4:o + 8])[0]
                   for o in range(12, 60, 8)
                   if struct.unpack("<H", b_data[o:o + 2])[0]]
        mic = None
        if len(b_data) >= AUTHENTICATE_HEADER_SIZE and \
                min(offsets or [0]) >= AUTHENTICATE_HEADER_SIZE:
            mic = bytes(b_data[72:88])

        return Authenticate(flags, lm_response, nt_response,
                            domain_name=domain, username=username,
                            workstation=workstation,
                            encrypted_session_key=session_key,
                            version=version, mic=mic)


def create_negotiate_message(domain=None, workstation=None, unicode=True):
    """
    Creates the NEGOTIATE message that starts the exchange.

    :param domain: The domain of the client, optional
    :param workstation: The workstation name of the client, optional
    :param unicode: Request UTF-16-LE strings, OEM strings are requested
        when False
    :return: The Negotiate message
    """
    flags = NegotiateFlags.ntlm | \
        NegotiateFlags.always_sign | \
        NegotiateFlags.extended_session_security | \
        NegotiateFlags.key_128 | \
        NegotiateFlags.key_56 | \
        NegotiateFlags.request_target | \
        NegotiateFlags.target_info | \
        NegotiateFlags.version
    flags |= NegotiateFlags.unicode if unicode else NegotiateFlags.oem

    return Negotiate(flags, domain_name=domain, workstation=workstation,
                     version=Version.default())


def get_response_provider(challenge, username, password=None, domain=None,
                          nt_hash=None, client_challenge=None, timestamp=None,
                          random_source=os.urandom, clock=filetime_now):
    """
    Picks the NTLMv2 responses when the server negotiated extended session
    security and the NTLMv1 responses otherwise. The caller has no say in
    this, answering with anything else than what the server chose fails.

    :return: The ResponseProvider for the challenge
    """
    domain = domain or ""
    if challenge.flags & NegotiateFlags.extended_session_security:
        log.debug("Server negotiated extended session security, using "
                  "NTLMv2 responses")
        b_target_info = None
        if challenge.target_info is not None:
            b_target_info = challenge.target_info.pack()

            if challenge.target_info.flags & AvFlags.mic:
                log.warning("Server target info requests a MIC but the MIC "
                            "is not computed, the AUTHENTICATE message will "
                            "carry an empty MIC")

            # [MS-NLMP] 3.1.5.1.2 the server time is used when it is known
            if timestamp is None:
                timestamp = challenge.target_info.timestamp

        return NTLMv2(domain, username, challenge.server_challenge,
                      password=password, nt_hash=nt_hash,
                      client_challenge=client_challenge,
                      target_info=b_target_info, timestamp=timestamp,
                      random_source=random_source, clock=clock)
    else:
        log.debug("Server did not negotiate extended session security, "
                  "using NTLMv1 responses")
        return NTLMv1(domain, username, challenge.server_challenge,
                      password=password, nt_hash=nt_hash)


def create_authenticate_message(challenge, username, password=None,
                                domain=None, workstation=None, nt_hash=None,
                                client_challenge=None, timestamp=None,
                                random_source=os.urandom,
                                clock=filetime_now):
    """
    Creates the AUTHENTICATE message in reply to the server's CHALLENGE.

    :param challenge: The parsed Challenge message
    :param username: The username, sent with the case it is given
    :param password: The password of the user
    :param domain: The domain of the user
    :param workstation: The workstation name of the client
    :param nt_hash: The NT hash of the user, used instead of the password
    :param client_challenge: An explicit NTLMv2 client challenge
    :param timestamp: An explicit NTLMv2 blob FILETIME
    :param random_source: Source of random bytes for the client challenge
    :param clock: Source of the current FILETIME
    :return: The Authenticate message
    """
    flags = challenge.flags
    if not flags & (NegotiateFlags.unicode | NegotiateFlags.oem):
        raise MalformedNtlmException("CHALLENGE flags 0x%08x set neither "
                                     "the UNICODE nor the OEM flag"
                                     % int(flags))

    provider = get_response_provider(challenge, username, password=password,
                                     domain=domain, nt_hash=nt_hash,
                                     client_challenge=client_challenge,
                                     timestamp=timestamp,
                                     random_source=random_source,
                                     clock=clock)

    nt_response = provider.nt_response()
    if isinstance(provider, NTLMv1) and not password:
        # the LM hash can't be derived from the NT hash
        lm_response = nt_response
    else:
        lm_response = provider.lm_response()

    version = None
    if flags & NegotiateFlags.version:
        version = Version.default()

    log.debug("Creating AUTHENTICATE message with flags 0x%08x"
              % int(flags))
    return Authenticate(flags, lm_response, nt_response,
                        domain_name=(domain or "").upper(),
                        username=username,
                        workstation=(workstation or "").upper(),
                        version=version)
