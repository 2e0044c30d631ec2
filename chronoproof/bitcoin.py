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

"""Sources of Bitcoin block data

Verification only needs two things from the blockchain: the hash of the block
at a given height, and the merkle root of a block given its hash. Both are
trusted as-is; nothing here checks proof-of-work.

Block hashes are passed around in whatever form the source uses. Merkle roots
are always returned in display byte order, the reverse of what the proof
commits to.
"""

import http.client
import json
import logging
import urllib.error
import urllib.request

import bitcoin.rpc
from bitcoin.core import b2lx, lx


class BlockchainError(Exception):
    """Block data couldn't be retrieved

    Usually transient; the caller may retry later.
    """


class BitcoinRPCBlockchain:
    """Block data from a Bitcoin Core node, over JSON-RPC"""

    def __init__(self, proxy):
        self.proxy = proxy

    @classmethod
    def from_service_url(cls, service_url=None):
        """Connect to a node; None uses the local bitcoin.conf"""
        try:
            return cls(bitcoin.rpc.Proxy(service_url=service_url))
        except (OSError, ValueError) as exp:
            raise BlockchainError("Could not connect to Bitcoin node: %s" % exp)

    def get_block_hash(self, height):
        try:
            return self.proxy.getblockhash(height)
        except IndexError:
            raise BlockchainError("Bitcoin block height %d not found" % height)
        except (OSError, http.client.HTTPException, bitcoin.rpc.JSONRPCError) as exp:
            raise BlockchainError("Could not get block hash from Bitcoin node: %s" % exp)

    def get_merkle_root(self, blockhash):
        try:
            block_header = self.proxy.getblockheader(blockhash)
        except (IndexError, OSError, http.client.HTTPException, bitcoin.rpc.JSONRPCError) as exp:
            raise BlockchainError("Could not get block header %s from Bitcoin node: %s" % (b2lx(blockhash), exp))

        logging.debug("Block %s has merkle root %s" % (b2lx(blockhash), b2lx(block_header.hashMerkleRoot)))
        return block_header.hashMerkleRoot[::-1]


class InsightBlockchain:
    """Block data from an Insight block explorer API"""

    def __init__(self, url, timeout=None):
        self.url = url.rstrip('/')
        self.timeout = timeout

    def _get_json(self, path):
        try:
            with urllib.request.urlopen(self.url + path, timeout=self.timeout) as resp:
                if resp.status != 200:
                    raise BlockchainError("Unknown response from %s: %d" % (self.url, resp.status))
                return json.loads(resp.read().decode('utf8'))
        except urllib.error.URLError as exp:
            raise BlockchainError("%s: %s" % (self.url, exp.reason))
        except OSError as exp:
            raise BlockchainError("%s: %s" % (self.url, exp))
        except ValueError as exp:
            raise BlockchainError("Invalid response from %s: %s" % (self.url, exp))

    def get_block_hash(self, height):
        data = self._get_json('/block-index/%d' % height)
        try:
            return lx(data['blockHash'])
        except (KeyError, TypeError, ValueError) as exp:
            raise BlockchainError("Invalid block-index response from %s: %r" % (self.url, exp))

    def get_merkle_root(self, blockhash):
        data = self._get_json('/block/%s' % b2lx(blockhash))
        try:
            return bytes.fromhex(data['merkleroot'])
        except (KeyError, TypeError, ValueError) as exp:
            raise BlockchainError("Invalid block response from %s: %r" % (self.url, exp))
