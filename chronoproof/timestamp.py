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

"""Convenience functions for creating timestamps"""

import os

from chronoproof.core.op import OpAppend, OpSHA256

def nonce_timestamp(private_timestamp, crypt_op=OpSHA256(), length=16, nonce=None):
    """Create a nonced version of a timestamp for privacy

    Files - and their timestamps - might get separated later, so without a
    nonce the timestamp would leak information on the digests of adjacent
    files. Passing the same nonce twice reuses the existing branch.
    """
    if nonce is None:
        nonce = os.urandom(length)
    stamp2 = private_timestamp.ops.add(OpAppend(nonce))
    return stamp2.ops.add(crypt_op)
