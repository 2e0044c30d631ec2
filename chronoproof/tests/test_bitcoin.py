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


import http.client
import io
import json
import unittest
import unittest.mock

import bitcoin.rpc
from bitcoin.core import CBlockHeader, lx, x

from chronoproof.bitcoin import *

# genesis block
GENESIS_HASH = lx('000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f')
GENESIS_MERKLEROOT = lx('4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b')

class FakeProxy:
    def __init__(self, blocks):
        self.blocks = blocks

    def getblockhash(self, height):
        try:
            return self.blocks[height][0]
        except IndexError:
            raise IndexError('Block height out of range')

    def getblockheader(self, blockhash):
        for block_hash, merkleroot in self.blocks:
            if block_hash == blockhash:
                return CBlockHeader(hashMerkleRoot=merkleroot)
        raise IndexError('Block not found')

class Test_BitcoinRPCBlockchain(unittest.TestCase):
    def test_genesis(self):
        blockchain = BitcoinRPCBlockchain(FakeProxy([(GENESIS_HASH, GENESIS_MERKLEROOT)]))

        blockhash = blockchain.get_block_hash(0)
        self.assertEqual(blockhash, GENESIS_HASH)

        # display order
        self.assertEqual(blockchain.get_merkle_root(blockhash),
                         x('4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b'))

    def test_missing_block(self):
        blockchain = BitcoinRPCBlockchain(FakeProxy([(GENESIS_HASH, GENESIS_MERKLEROOT)]))

        with self.assertRaises(BlockchainError):
            blockchain.get_block_hash(1)
        with self.assertRaises(BlockchainError):
            blockchain.get_merkle_root(b'\x00'*32)

    def test_rpc_errors(self):
        proxy = unittest.mock.Mock()
        proxy.getblockhash.side_effect = bitcoin.rpc.JSONRPCError({'code': -28, 'message': 'Loading block index...'})
        proxy.getblockheader.side_effect = ConnectionRefusedError()

        blockchain = BitcoinRPCBlockchain(proxy)
        with self.assertRaises(BlockchainError):
            blockchain.get_block_hash(0)
        with self.assertRaises(BlockchainError):
            blockchain.get_merkle_root(GENESIS_HASH)

        proxy.getblockhash.side_effect = TimeoutError('timed out')
        proxy.getblockheader.side_effect = http.client.BadStatusLine('')
        with self.assertRaises(BlockchainError):
            blockchain.get_block_hash(0)
        with self.assertRaises(BlockchainError):
            blockchain.get_merkle_root(GENESIS_HASH)

class FakeResponse(io.BytesIO):
    def __init__(self, obj, status=200):
        if not isinstance(obj, bytes):
            obj = json.dumps(obj).encode('utf8')
        super().__init__(obj)
        self.status = status

class Test_InsightBlockchain(unittest.TestCase):
    def setUp(self):
        patcher = unittest.mock.patch('urllib.request.urlopen')
        self.urlopen = patcher.start()
        self.addCleanup(patcher.stop)

    def test_genesis(self):
        blockchain = InsightBlockchain('https://insight.example.com/api/')

        self.urlopen.return_value = FakeResponse({'blockHash': '000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f'})
        blockhash = blockchain.get_block_hash(0)
        self.assertEqual(blockhash, GENESIS_HASH)
        self.assertEqual(self.urlopen.call_args[0][0], 'https://insight.example.com/api/block-index/0')

        self.urlopen.return_value = FakeResponse({'merkleroot': '4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b'})
        self.assertEqual(blockchain.get_merkle_root(blockhash),
                         x('4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b'))
        self.assertEqual(self.urlopen.call_args[0][0],
                         'https://insight.example.com/api/block/000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f')

    def test_errors(self):
        blockchain = InsightBlockchain('https://insight.example.com/api')

        self.urlopen.return_value = FakeResponse({'nope': 1})
        with self.assertRaises(BlockchainError):
            blockchain.get_block_hash(0)

        self.urlopen.return_value = FakeResponse({}, status=500)
        with self.assertRaises(BlockchainError):
            blockchain.get_block_hash(0)

        self.urlopen.return_value = FakeResponse(b'not json')
        with self.assertRaises(BlockchainError):
            blockchain.get_merkle_root(GENESIS_HASH)

    def test_io_errors(self):
        """Socket errors while reading are BlockchainErrors too"""
        blockchain = InsightBlockchain('https://insight.example.com/api', timeout=5)

        class StalledResponse(FakeResponse):
            def read(self, *args):
                raise TimeoutError('timed out')

        self.urlopen.return_value = StalledResponse({})
        with self.assertRaises(BlockchainError):
            blockchain.get_block_hash(358391)
        self.assertEqual(self.urlopen.call_args[1]['timeout'], 5)

        self.urlopen.return_value = None
        self.urlopen.side_effect = ConnectionResetError()
        with self.assertRaises(BlockchainError):
            blockchain.get_merkle_root(GENESIS_HASH)
