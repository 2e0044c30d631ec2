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

"""Binary encoding primitives for proofs

Proofs are built out of four primitives: fixed-length byte strings, unsigned
LEB128 integers ("varuints"), varuint length-prefixed byte strings
("varbytes") and single byte booleans. Writers and readers work on any
file-like object; the Bytes* variants wrap an in-memory buffer.
"""

import binascii
import io

# 63 bits of value
MAX_VARUINT_LENGTH = 9

class DeserializationError(Exception):
    """Malformed proof data

    Base class of every error raised while decoding, so callers that only care
    whether a proof could be read can catch just this.
    """

class BadMagicError(DeserializationError):
    """The data doesn't start with the expected magic bytes"""
    def __init__(self, expected_magic, actual_magic):
        self.expected_magic = expected_magic
        self.actual_magic = actual_magic
        super().__init__('Bad magic bytes; expected %s, got %s' % (binascii.hexlify(expected_magic).decode(),
                                                                    binascii.hexlify(actual_magic).decode()))

class UnsupportedMajorVersion(DeserializationError):
    """The format version isn't one we know how to read"""

class TruncationError(DeserializationError):
    """The data ended early"""

class TrailingGarbageError(DeserializationError):
    """Extra data follows what was decoded"""

class RecursionLimitError(DeserializationError):
    """Nesting exceeded the decoder's depth limit"""

class UnknownOperationError(DeserializationError):
    """A tag byte doesn't correspond to any known operation"""

class SerializerTypeError(TypeError):
    """Value of the wrong type given to a writer"""

class SerializerValueError(ValueError):
    """Value of the right type, but not encodable"""


class SerializationContext:
    """Destination for encoded data"""

    def write_bool(self, value):
        raise NotImplementedError

    def write_varuint(self, value):
        raise NotImplementedError

    def write_bytes(self, value):
        raise NotImplementedError

    def write_varbytes(self, value):
        raise NotImplementedError

class DeserializationContext:
    """Source of encoded data

    Every read either returns exactly what was asked for or raises a
    DeserializationError subclass.
    """

    def read_bool(self):
        raise NotImplementedError

    def read_varuint(self):
        raise NotImplementedError

    def read_bytes(self, expected_length=None):
        """Read fixed-length bytes

        With no length given, a varuint length prefix is read first.
        """
        raise NotImplementedError

    def read_varbytes(self, max_len, min_len=0):
        """Read length-prefixed bytes, checking the length against the bounds
        before reading the body.
        """
        raise NotImplementedError

    def assert_magic(self, expected_magic):
        """Raise BadMagicError unless the next bytes are expected_magic

        Runs regardless of -O; this is input validation, not a debug check.
        """
        raise NotImplementedError

    def assert_eof(self):
        """Raise TrailingGarbageError unless all data has been consumed"""
        raise NotImplementedError


class StreamSerializationContext(SerializationContext):
    """Write to a file-like object"""

    def __init__(self, fd):
        self.fd = fd

    def write_bool(self, value):
        if value is not True and value is not False:
            raise SerializerTypeError('Expected bool; got %r' % value.__class__)
        self.fd.write(b'\xff' if value else b'\x00')

    def write_varuint(self, value):
        if not isinstance(value, int):
            raise SerializerTypeError('Expected int; got %r' % value.__class__)
        elif value < 0:
            raise SerializerValueError('Can only write non-negative integers; got %d' % value)

        # Seven bits per byte, least significant group first, high bit set on
        # every byte but the last.
        encoded = bytearray()
        while value > 0x7f:
            encoded.append(0x80 | (value & 0x7f))
            value >>= 7
        encoded.append(value)
        self.fd.write(bytes(encoded))

    def write_bytes(self, value):
        self.fd.write(value)

    def write_varbytes(self, value):
        self.write_varuint(len(value))
        self.write_bytes(value)

class StreamDeserializationContext(DeserializationContext):
    """Read from a file-like object"""

    def __init__(self, fd):
        self.fd = fd

    def _read_exactly(self, length):
        data = self.fd.read(length)
        if len(data) != length:
            raise TruncationError('Expected %d bytes; only %d available' % (length, len(data)))
        return data

    def read_bool(self):
        (b,) = self._read_exactly(1)
        if b == 0xff:
            return True
        elif b == 0x00:
            return False
        else:
            raise DeserializationError('Invalid bool 0x%02x' % b)

    def read_varuint(self):
        value = 0
        for i in range(MAX_VARUINT_LENGTH):
            (b,) = self._read_exactly(1)
            value |= (b & 0x7f) << (7 * i)
            if b & 0x80 == 0:
                return value
        raise DeserializationError('varuint longer than %d bytes' % MAX_VARUINT_LENGTH)

    def read_bytes(self, expected_length=None):
        if expected_length is None:
            expected_length = self.read_varuint()
        return self._read_exactly(expected_length)

    def read_varbytes(self, max_len, min_len=0):
        length = self.read_varuint()
        if not min_len <= length <= max_len:
            raise DeserializationError('varbytes length %d outside of allowed range %d to %d' % (length, min_len, max_len))
        return self._read_exactly(length)

    def assert_magic(self, expected_magic):
        actual_magic = self.fd.read(len(expected_magic))
        if actual_magic != expected_magic:
            raise BadMagicError(expected_magic, actual_magic)

    def assert_eof(self):
        if self.fd.read(1):
            raise TrailingGarbageError('Unexpected data after end of proof')

class BytesSerializationContext(StreamSerializationContext):
    """Write to an in-memory buffer"""

    def __init__(self):
        super().__init__(io.BytesIO())

    def getbytes(self):
        return self.fd.getvalue()

class BytesDeserializationContext(StreamDeserializationContext):
    """Read from bytes"""

    def __init__(self, buf):
        super().__init__(io.BytesIO(buf))
