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

__version__ = '0.1.0'
