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

"""Proof trees and detached proof files"""

import binascii

from bitcoin.core import CTransaction, SerializationError, b2lx, b2x

from chronoproof.core.op import Op, CryptOp, OpSHA256, OpAppend, OpPrepend, MsgValueError
from chronoproof.core.notary import TimeAttestation, BitcoinBlockHeaderAttestation

import chronoproof.core.serialize

class MsgMismatchError(ValueError):
    """Two timestamps for different messages were combined"""

class InvariantViolationError(ValueError):
    """A child timestamp isn't the result of applying its op to the parent"""

class OpSet(dict):
    """The operations applied to a message, each mapped to its result

    Every value is a Timestamp for op(parent_msg). Assigning to an op that's
    already present merges into the existing result rather than replacing it.
    """
    __slots__ = ['__parent_msg']

    def __init__(self, parent_msg):
        self.__parent_msg = parent_msg

    def add(self, op):
        """Apply op, returning the timestamp for the result

        If op was applied before, the existing timestamp is returned.
        """
        stamp = self.get(op)
        if stamp is None:
            stamp = Timestamp(op(self.__parent_msg))
            dict.__setitem__(self, op, stamp)
        return stamp

    def __setitem__(self, op, new_timestamp):
        if not isinstance(new_timestamp, Timestamp):
            raise TypeError("Expected Timestamp; got %r" % new_timestamp.__class__)

        if new_timestamp.msg != op(self.__parent_msg):
            raise InvariantViolationError("Timestamp for %s is for the wrong message" % op)

        existing = self.get(op)
        if existing is None:
            dict.__setitem__(self, op, new_timestamp)
        elif existing is not new_timestamp:
            existing.merge(new_timestamp)

class Timestamp:
    """A message, and the proof that it existed at some point in time

    The proof is a tree. Each node is a message; each edge is an operation
    taking the parent's message to the child's; attestations hang off any
    node. Following the edges from the root to an attestation computes the
    message that the attestation is about.

    Trees only grow, through ops.add() and merge(). Neither is thread-safe.
    """
    __slots__ = ['__msg', 'attestations', 'ops']

    @property
    def msg(self):
        return self.__msg

    def __init__(self, msg):
        if not isinstance(msg, bytes):
            raise TypeError("Expected msg to be bytes; got %r" % msg.__class__)
        elif len(msg) > Op.MAX_MSG_LENGTH:
            raise ValueError("Message too long; %d > %d" % (len(msg), Op.MAX_MSG_LENGTH))

        self.__msg = msg
        self.attestations = set()
        self.ops = OpSet(msg)

    def __eq__(self, other):
        if isinstance(other, Timestamp):
            return (self.__msg == other.__msg and
                    self.attestations == other.attestations and
                    dict(self.ops) == dict(other.ops))
        else:
            return False

    def __repr__(self):
        return 'Timestamp(<%s>)' % binascii.hexlify(self.__msg).decode('utf8')

    def _check_merge(self, other):
        if not isinstance(other, Timestamp):
            raise TypeError("Can only merge Timestamps together; got %r" % other.__class__)
        elif self.__msg != other.__msg:
            raise MsgMismatchError("Can't merge a timestamp for %s into one for %s" %
                                   (b2x(other.__msg), b2x(self.__msg)))

        for op, other_op_stamp in other.ops.items():
            our_op_stamp = self.ops.get(op)
            if our_op_stamp is None:
                if other_op_stamp.msg != op(self.__msg):
                    raise InvariantViolationError("Timestamp for %s is for the wrong message" % op)
                our_op_stamp = Timestamp(other_op_stamp.msg)
            our_op_stamp._check_merge(other_op_stamp)

    def _merge(self, other):
        self.attestations |= other.attestations
        for op, other_op_stamp in other.ops.items():
            self.ops.add(op)._merge(other_op_stamp)

    def merge(self, other):
        """Merge another timestamp for the same message into this one

        Afterwards this timestamp has every op and attestation the other has.
        Nothing is copied by reference. Merging is idempotent and the result
        doesn't depend on merge order.

        The other timestamp is checked in full first, so if MsgMismatchError
        or InvariantViolationError is raised this timestamp is unchanged.
        """
        self._check_merge(other)
        self._merge(other)

    def serialize(self, ctx):
        if not self.attestations and not self.ops:
            raise ValueError("An empty timestamp can't be serialized")

        # Attestations first, then ops, each in canonical order. Every element
        # but the last is preceded by \xff.
        elements = [(None, attestation) for attestation in sorted(self.attestations)]
        elements.extend(sorted(self.ops.items(), key=lambda item: item[0]))

        for i, (op, value) in enumerate(elements):
            if i < len(elements) - 1:
                ctx.write_bytes(b'\xff')

            if op is None:
                ctx.write_bytes(b'\x00')
            else:
                op.serialize(ctx)
            value.serialize(ctx)

    def _deserialize_element(self, ctx, tag, recursion_limit):
        if tag == b'\x00':
            self.attestations.add(TimeAttestation.deserialize(ctx))
            return

        op = Op.deserialize_from_tag(ctx, tag)
        try:
            result = op(self.__msg)
        except MsgValueError as exp:
            raise chronoproof.core.serialize.DeserializationError("Can't apply %r to message: %s" % (op, exp))

        self.ops[op] = Timestamp.deserialize(ctx, result, recursion_limit=recursion_limit - 1)

    @classmethod
    def deserialize(cls, ctx, initial_msg, recursion_limit=256):
        """Deserialize a timestamp for initial_msg

        The message itself isn't part of the serialized form; every result
        message is recomputed from it as the tree is read, so a tree that
        decodes is consistent by construction.
        """
        if recursion_limit <= 0:
            raise chronoproof.core.serialize.RecursionLimitError("Timestamp nested too deeply")

        self = cls(initial_msg)
        while True:
            tag = ctx.read_bytes(1)
            if tag != b'\xff':
                self._deserialize_element(ctx, tag, recursion_limit)
                return self

            self._deserialize_element(ctx, ctx.read_bytes(1), recursion_limit)

    def walk(self):
        """Iterate over every timestamp in the tree, depth first"""
        yield self
        for op, op_stamp in sorted(self.ops.items(), key=lambda item: item[0]):
            yield from op_stamp.walk()

    def all_attestations(self):
        """Iterate over (msg, attestation) pairs for the whole tree

        msg is the message the attestation is for. Order is depth first, the
        same order the attestations are serialized in.
        """
        for stamp in self.walk():
            for attestation in sorted(stamp.attestations):
                yield (stamp.msg, attestation)

    def directly_verified(self):
        """Iterate over every timestamp in the tree that has attestations

        Every branch is searched, including the ones below timestamps that are
        themselves attested.
        """
        for stamp in self.walk():
            if stamp.attestations:
                yield stamp

    def get_attestations(self):
        """Return the set of all attestations in the tree"""
        return {attestation for msg, attestation in self.all_attestations()}

    def is_complete(self):
        """True if any Bitcoin attestation is in the tree"""
        return any(isinstance(attestation, BitcoinBlockHeaderAttestation)
                   for msg, attestation in self.all_attestations())

    def _bitcoin_txid(self):
        try:
            CTransaction.deserialize(self.__msg)
        except (SerializationError, ValueError):
            return None
        return b2lx(OpSHA256()(OpSHA256()(self.__msg)))

    def str_tree(self, indent=0, verbosity=0):
        """Human readable rendering of the tree

        With verbosity > 0, the result of every op is shown too.
        """
        prefix = ' ' * indent
        r = ''

        for attestation in sorted(self.attestations):
            r += prefix + 'verify %s\n' % attestation
            if isinstance(attestation, BitcoinBlockHeaderAttestation):
                r += prefix + '# Bitcoin block merkle root %s\n' % b2lx(self.__msg)

        if self.ops:
            txid = self._bitcoin_txid()
            if txid is not None:
                r += prefix + '# Bitcoin transaction id %s\n' % txid

        sorted_ops = sorted(self.ops.items(), key=lambda item: item[0])
        for op, op_stamp in sorted_ops:
            op_str = str(op)
            if verbosity > 0:
                op_str += ' == %s' % b2x(op_stamp.msg)

            # A lone op continues the current branch; several fork it
            if len(sorted_ops) == 1:
                r += prefix + op_str + '\n'
                r += op_stamp.str_tree(indent, verbosity=verbosity)
            else:
                r += prefix + ' -> ' + op_str + '\n'
                r += op_stamp.str_tree(indent + 4, verbosity=verbosity)

        return r


class DetachedTimestampFile:
    """A proof for a file, stored separately from the file

    Records the hash op used on the file, the file's digest, and the timestamp
    for that digest. The file itself isn't needed until verification.
    """

    HEADER_MAGIC = b'\x00OpenTimestamps\x00\x00Proof\x00\xbf\x89\xe2\xe8\x84\xe8\x92\x94'
    """Magic bytes at the start of every proof file

    Readable in a hexdump, yet with enough binary that file(1) calls it data.
    """

    MAJOR_VERSION = 1

    def __init__(self, file_hash_op, timestamp):
        if not isinstance(file_hash_op, CryptOp):
            raise TypeError("file_hash_op must be a CryptOp; got %r" % file_hash_op.__class__)
        elif len(timestamp.msg) != file_hash_op.DIGEST_LENGTH:
            raise ValueError("%s digests are %d bytes; timestamp message is %d bytes" %
                             (file_hash_op.TAG_NAME, file_hash_op.DIGEST_LENGTH, len(timestamp.msg)))

        self.file_hash_op = file_hash_op
        self.timestamp = timestamp

    @property
    def file_digest(self):
        """Digest of the timestamped file"""
        return self.timestamp.msg

    def __repr__(self):
        return 'DetachedTimestampFile(<%s:%s>)' % (self.file_hash_op, b2x(self.file_digest))

    def __eq__(self, other):
        return (isinstance(other, DetachedTimestampFile) and
                self.file_hash_op == other.file_hash_op and
                self.timestamp == other.timestamp)

    @classmethod
    def from_fd(cls, file_hash_op, fd):
        """Hash a file, returning a proof with an empty timestamp"""
        return cls(file_hash_op, Timestamp(file_hash_op.hash_fd(fd)))

    @classmethod
    def from_bytes(cls, file_hash_op, buf):
        return cls(file_hash_op, Timestamp(file_hash_op.hash_bytes(buf)))

    def serialize(self, ctx):
        ctx.write_bytes(self.HEADER_MAGIC)
        ctx.write_varuint(self.MAJOR_VERSION)

        self.file_hash_op.serialize(ctx)
        ctx.write_bytes(self.file_digest)

        self.timestamp.serialize(ctx)

    @classmethod
    def deserialize(cls, ctx):
        ctx.assert_magic(cls.HEADER_MAGIC)

        major_version = ctx.read_varuint()
        if major_version != cls.MAJOR_VERSION:
            raise chronoproof.core.serialize.UnsupportedMajorVersion("Proof file version %d not supported" % major_version)

        file_hash_op = CryptOp.deserialize(ctx)
        file_digest = ctx.read_bytes(file_hash_op.DIGEST_LENGTH)
        timestamp = Timestamp.deserialize(ctx, file_digest)

        ctx.assert_eof()

        return cls(file_hash_op, timestamp)


def cat_then_unary_op(unary_op_cls, left, right):
    """Timestamp unary_op(left + right)

    left and right may be Timestamps or bytes. Both get ops leading to the
    concatenation, sharing a single timestamp for it, so anything later added
    to the result is reachable from either side.

    Returns the timestamp for the result.
    """
    if not isinstance(left, Timestamp):
        left = Timestamp(left)
    if not isinstance(right, Timestamp):
        right = Timestamp(right)

    cat_stamp = right.ops.add(OpPrepend(left.msg))
    left.ops[OpAppend(right.msg)] = cat_stamp

    return cat_stamp.ops.add(unary_op_cls())


def cat_sha256(left, right):
    return cat_then_unary_op(OpSHA256, left, right)


def make_merkle_tree(timestamps, binop=cat_sha256):
    """Combine timestamps into a merkle tree, in place

    Adjacent pairs are combined with binop() level by level; an odd timestamp
    out is carried up to the next level unchanged. A single timestamp is its
    own tip.

    Returns the timestamp for the tip of the tree.
    """
    stamps = list(timestamps)
    if not stamps:
        raise ValueError("Need at least one timestamp")

    while len(stamps) > 1:
        next_stamps = [binop(stamps[i], stamps[i+1]) for i in range(0, len(stamps) - 1, 2)]
        if len(stamps) % 2:
            next_stamps.append(stamps[-1])
        stamps = next_stamps

    return stamps[0]
