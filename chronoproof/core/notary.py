# Copyright (C) 2026 The chronoproof developers
#
# This file is part of chronoproof.
#
# It is subject to the license terms in the LICENSE file found in the top-level
# directory of this distribution.
#
# No part of chronoproof including this file, may be copied, modified,
# propagated, or distributed except according to the terms contained in the
# LICENSE file.

"""Attestations: the leaves of a proof tree

An attestation is a claim, by some notary, that the message of the node it's
attached to existed at some point in time. On the wire each one is an 8-byte
tag followed by a varbytes payload whose contents depend on the tag.
"""

import chronoproof.core.serialize

class VerificationError(Exception):
    """An attestation didn't check out"""

class TimeAttestation:
    """Base class of all attestations

    Attestations are immutable values. Equality, hashing and ordering all go
    by (TAG, value), where value is whatever the subclass carries; sorting a
    set of attestations therefore gives the canonical serialization order.
    """

    TAG = None
    TAG_SIZE = 8

    MAX_PAYLOAD_SIZE = 8192

    KNOWN_ATTESTATIONS_BY_TAG = {}

    @classmethod
    def _register_attestation(cls, subcls):
        cls.KNOWN_ATTESTATIONS_BY_TAG[subcls.TAG] = subcls
        return subcls

    def _value(self):
        raise NotImplementedError

    def _sort_key(self):
        return (self.TAG, self._value())

    def __eq__(self, other):
        if isinstance(other, TimeAttestation):
            return self._sort_key() == other._sort_key()
        else:
            return NotImplemented

    def __ne__(self, other):
        r = self.__eq__(other)
        if r is NotImplemented:
            return r
        return not r

    def __lt__(self, other):
        if isinstance(other, TimeAttestation):
            if self.TAG != other.TAG:
                return self.TAG < other.TAG
            return self._value() < other._value()
        else:
            return NotImplemented

    def __gt__(self, other):
        if isinstance(other, TimeAttestation):
            return other.__lt__(self)
        else:
            return NotImplemented

    def __hash__(self):
        return hash(self._sort_key())

    def _serialize_payload(self, ctx):
        raise NotImplementedError

    def serialize(self, ctx):
        payload_ctx = chronoproof.core.serialize.BytesSerializationContext()
        self._serialize_payload(payload_ctx)

        ctx.write_bytes(self.TAG)
        ctx.write_varbytes(payload_ctx.getbytes())

    @classmethod
    def deserialize(cls, ctx):
        tag = ctx.read_bytes(cls.TAG_SIZE)
        payload = ctx.read_varbytes(cls.MAX_PAYLOAD_SIZE)

        try:
            attestation_cls = cls.KNOWN_ATTESTATIONS_BY_TAG[tag]
        except KeyError:
            return UnknownAttestation(tag, payload)

        payload_ctx = chronoproof.core.serialize.BytesDeserializationContext(payload)
        attestation = attestation_cls._deserialize_payload(payload_ctx)

        # A known payload must be consumed exactly, or re-encoding would change
        # the proof.
        payload_ctx.assert_eof()
        return attestation


class UnknownAttestation(TimeAttestation):
    """An attestation of a kind we don't understand

    Kept verbatim so that proofs survive a round trip through software that
    doesn't know about newer attestation kinds. Never verifiable.
    """

    def __init__(self, tag, payload):
        if not isinstance(tag, bytes):
            raise TypeError("tag must be bytes; got %r" % tag.__class__)
        elif len(tag) != self.TAG_SIZE:
            raise ValueError("tag must be %d bytes long; got %d" % (self.TAG_SIZE, len(tag)))
        elif tag in self.KNOWN_ATTESTATIONS_BY_TAG:
            raise ValueError("tag %s belongs to %s" % (tag.hex(), self.KNOWN_ATTESTATIONS_BY_TAG[tag].__name__))

        if not isinstance(payload, bytes):
            raise TypeError("payload must be bytes; got %r" % payload.__class__)
        elif len(payload) > self.MAX_PAYLOAD_SIZE:
            raise ValueError("payload too long; %d > %d" % (len(payload), self.MAX_PAYLOAD_SIZE))

        self.TAG = tag
        self.payload = payload

    def _value(self):
        return self.payload

    def __repr__(self):
        return 'UnknownAttestation(%r, %r)' % (self.TAG, self.payload)

    def __str__(self):
        return 'UnknownAttestation(tag=%s)' % self.TAG.hex()

    def _serialize_payload(self, ctx):
        # already encoded; no extra length prefix
        ctx.write_bytes(self.payload)


@TimeAttestation._register_attestation
class PendingAttestation(TimeAttestation):
    """A calendar has promised to attest to the message later

    The URI is where to ask for the finished attestation. It's checked against
    a conservative character set, as it comes from untrusted proofs and ends up
    in log output and HTTP requests.
    """

    TAG = bytes.fromhex('83dfe30d2ef90c8e')

    MAX_URI_LENGTH = 1000

    # No query strings, fragments, percent-escapes, IPv6 literals or
    # user@host logins.
    ALLOWED_URI_CHARS = frozenset(b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._/:")

    @classmethod
    def check_uri(cls, uri):
        """Raise ValueError if the (utf8 encoded) URI isn't acceptable"""
        if len(uri) > cls.MAX_URI_LENGTH:
            raise ValueError("URI too long; %d > %d bytes" % (len(uri), cls.MAX_URI_LENGTH))

        bad_chars = set(uri).difference(cls.ALLOWED_URI_CHARS)
        if bad_chars:
            raise ValueError("URI contains invalid character(s) %r" % bytes(sorted(bad_chars)))

    def __init__(self, uri):
        if not isinstance(uri, str):
            raise TypeError("URI must be a str; got %r" % uri.__class__)
        self.check_uri(uri.encode('utf8'))
        self.uri = uri

    def _value(self):
        return self.uri

    def __repr__(self):
        return 'PendingAttestation(%r)' % self.uri

    __str__ = __repr__

    def _serialize_payload(self, ctx):
        ctx.write_varbytes(self.uri.encode('utf8'))

    @classmethod
    def _deserialize_payload(cls, ctx):
        encoded_uri = ctx.read_varbytes(cls.MAX_URI_LENGTH)
        try:
            cls.check_uri(encoded_uri)
        except ValueError as exp:
            raise chronoproof.core.serialize.DeserializationError("Invalid pending attestation URI: %s" % exp)
        return cls(encoded_uri.decode('utf8'))


@TimeAttestation._register_attestation
class BitcoinBlockHeaderAttestation(TimeAttestation):
    """The message is the merkle root of a Bitcoin block

    Only the height is stored. Verifying means fetching the block at that
    height from a source of block data and comparing merkle roots.
    """

    TAG = bytes.fromhex('0588960d73d71901')

    def __init__(self, height):
        if not isinstance(height, int):
            raise TypeError("height must be an int; got %r" % height.__class__)
        elif height < 0:
            raise ValueError("height can't be negative; got %d" % height)
        self.height = height

    def _value(self):
        return self.height

    def __repr__(self):
        return 'BitcoinBlockHeaderAttestation(%r)' % self.height

    __str__ = __repr__

    def verify_against_merkleroot(self, digest, merkleroot):
        """Check the attested digest against a block's merkle root

        merkleroot is in display byte order, as shown by block explorers and
        Bitcoin Core's RPC interface; digest is the reverse of that.

        Raises VerificationError if they don't match.
        """
        if len(digest) != 32:
            raise VerificationError("Expected a 32 byte digest; got %d bytes" % len(digest))
        elif digest[::-1] != merkleroot:
            raise VerificationError("Digest doesn't match block %d merkle root" % self.height)

    def _serialize_payload(self, ctx):
        ctx.write_varuint(self.height)

    @classmethod
    def _deserialize_payload(cls, ctx):
        return cls(ctx.read_varuint())
