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

import io
import unittest

from chronoproof.core.op import *
from chronoproof.core.serialize import *

class Test_Op(unittest.TestCase):
    def test_append(self):
        """Append operation"""
        self.assertEqual(OpAppend(b'suffix')(b'msg'), b'msgsuffix')

    def test_append_invalid_arg(self):
        """Append op, invalid argument"""
        with self.assertRaises(TypeError):
            OpAppend('')
        with self.assertRaises(OpArgValueError):
            OpAppend(b'')
        with self.assertRaises(OpArgValueError):
            OpAppend(b'.'*4097)

    def test_append_invalid_msg(self):
        """Append op, invalid message"""
        with self.assertRaises(TypeError):
            OpAppend(b'.')(None)
        with self.assertRaises(TypeError):
            OpAppend(b'.')('')

        OpAppend(b'.')(b'.'*4095)
        with self.assertRaises(MsgValueError):
            OpAppend(b'.')(b'.'*4096)

    def test_prepend(self):
        """Prepend operation"""
        self.assertEqual(OpPrepend(b'prefix')(b'msg'), b'prefixmsg')

    def test_prepend_invalid_arg(self):
        """Prepend op, invalid argument"""
        with self.assertRaises(TypeError):
            OpPrepend('')
        with self.assertRaises(OpArgValueError):
            OpPrepend(b'')
        with self.assertRaises(OpArgValueError):
            OpPrepend(b'.'*4097)

    def test_sha1(self):
        """SHA1 operation"""
        self.assertEqual(OpSHA1()(b''), bytes.fromhex('da39a3ee5e6b4b0d3255bfef95601890afd80709'))

    def test_sha256(self):
        """SHA256 operation"""
        self.assertEqual(OpSHA256()(b''), bytes.fromhex('e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'))

    def test_ripemd160(self):
        """RIPEMD160 operation"""
        self.assertEqual(OpRIPEMD160()(b''), bytes.fromhex('9c1185a5c5e9fc54612808977ee8f548b2258d31'))

    def test_keccak256(self):
        """KECCAK256 operation"""
        self.assertEqual(OpKECCAK256()(b''), bytes.fromhex('c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470'))
        self.assertEqual(OpKECCAK256()(b'\x80'), bytes.fromhex('56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421'))

    def test_hash_fd(self):
        """Hashing streams matches hashing messages"""
        for op in (OpSHA1(), OpRIPEMD160(), OpSHA256(), OpKECCAK256()):
            self.assertEqual(op.hash_fd(io.BytesIO(b'hello world')), op(b'hello world'))
            self.assertEqual(op.hash_bytes(b'hello world'), op(b'hello world'))

    def test_hash_bytes_no_length_limit(self):
        """hash_bytes() isn't subject to the message length limit"""
        with self.assertRaises(MsgValueError):
            OpSHA256()(b'.'*5000)
        self.assertEqual(len(OpSHA256().hash_bytes(b'.'*5000)), 32)

    def test_equality(self):
        """Operation equality"""
        self.assertEqual(OpSHA256(), OpSHA256())
        self.assertNotEqual(OpSHA256(), OpSHA1())

        self.assertEqual(OpAppend(b'foo'), OpAppend(b'foo'))
        self.assertNotEqual(OpAppend(b'foo'), OpAppend(b'bar'))
        self.assertNotEqual(OpAppend(b'foo'), OpPrepend(b'foo'))

        self.assertEqual(hash(OpAppend(b'foo')), hash(OpAppend(b'foo')))
        self.assertEqual(len({OpAppend(b'foo'), OpAppend(b'foo'), OpSHA256()}), 2)

    def test_ordering(self):
        """Operation ordering"""
        self.assertTrue(OpSHA1() < OpRIPEMD160())
        self.assertTrue(OpRIPEMD160() < OpSHA256())
        self.assertTrue(OpSHA256() < OpKECCAK256())
        self.assertTrue(OpKECCAK256() < OpAppend(b'a'))
        self.assertTrue(OpAppend(b'a') < OpAppend(b'b'))
        self.assertTrue(OpAppend(b'z') < OpPrepend(b'a'))

        self.assertEqual(sorted([OpPrepend(b'a'), OpSHA256(), OpAppend(b'b'), OpAppend(b'a')]),
                         [OpSHA256(), OpAppend(b'a'), OpAppend(b'b'), OpPrepend(b'a')])

    def test_serialization(self):
        """Operation (de)serialization"""
        def T(op, expected_serialized):
            ctx = BytesSerializationContext()
            op.serialize(ctx)
            self.assertEqual(ctx.getbytes(), expected_serialized)

            ctx = BytesDeserializationContext(expected_serialized)
            self.assertEqual(Op.deserialize(ctx), op)

        T(OpSHA1(), b'\x02')
        T(OpRIPEMD160(), b'\x03')
        T(OpSHA256(), b'\x08')
        T(OpKECCAK256(), b'\x67')
        T(OpAppend(b'foo'), b'\xf0\x03foo')
        T(OpPrepend(b'foo'), b'\xf1\x03foo')

    def test_deserialize_unknown_tag(self):
        """Unknown operation tags are rejected"""
        with self.assertRaises(UnknownOperationError):
            Op.deserialize(BytesDeserializationContext(b'\x42'))

        # Only crypt ops are acceptable where a file hash op is expected
        with self.assertRaises(UnknownOperationError):
            CryptOp.deserialize(BytesDeserializationContext(b'\xf0\x03foo'))

    def test_deserialize_empty_arg(self):
        """Append/prepend with an empty argument can't be deserialized"""
        with self.assertRaises(DeserializationError):
            Op.deserialize(BytesDeserializationContext(b'\xf0\x00'))

    def test_deserialize_truncated(self):
        """Truncated operations"""
        with self.assertRaises(TruncationError):
            Op.deserialize(BytesDeserializationContext(b''))
        with self.assertRaises(TruncationError):
            Op.deserialize(BytesDeserializationContext(b'\xf0\x03fo'))
