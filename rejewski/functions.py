#!/usr/bin/python3
"""
General functions used by classes and attacks.
"""
import random
import string

from rejewski.lib import *

"""
Byte functions
"""


def equal(a, b):
    if len(a) != len(b):
        return False
    for x, y in zip(a, b):
        if x != y:
            return False
    return True


def shared_window(a, b, window_size):
    """
    Find first offsets (a, b) where window_size bytes of both buffers match.

    Useful to measure displacement between two ciphertexts that differ
    only in length of some leading data.
    """
    if window_size < 1:
        raise ArgumentError('Window size must be positive.')
    for offset_a in range(0, len(a) - window_size + 1):
        window = a[offset_a:offset_a+window_size]
        for offset_b in range(0, len(b) - window_size + 1):
            if equal(window, b[offset_b:offset_b+window_size]):
                return (offset_a, offset_b)
    return None


def common_prefix_length(a, b):
    """
    Return number of leading bytes shared by a and b, None if there are none.
    """
    if not a or not b:
        return None
    index = 0
    while index < min(len(a), len(b)) and a[index] == b[index]:
        index += 1
    return index or None


def xor(data1, data2):
    if len(data1) != len(data2):
        raise ArgumentError('XOR operands must have equal length (%d != %d).'
                            % (len(data1), len(data2)))
    return bytes(x ^ y for x, y in zip(data1, data2))


def repeating_xor(data, key):
    if not key:
        raise ArgumentError('Using XOR with empty key.')
    return bytes(c ^ key[i % len(key)] for i, c in enumerate(data))


def hamming(data1, data2):
    if len(data1) != len(data2):
        raise ArgumentError('Hamming distance needs equal lengths (%d != %d).'
                            % (len(data1), len(data2)))
    return sum(bin(x ^ y).count('1') for x, y in zip(data1, data2))


def hexadecimal(data):
    return b''.join(b'%02x' % c for c in data)


def unhexadecimal(stream):
    if isinstance(stream, str):
        stream = stream.encode()
    if stream[:2] in (b'0x', b'0X'):
        stream = stream[2:]
    if len(stream) % 2:
        raise DataError('Odd number of hex digits.')
    try:
        return bytes(int(stream[i:i+2], 16) for i in range(0, len(stream), 2))
    except ValueError:
        raise DataError('Not a hex stream.')


"""
Statistics
"""


def histogram(data):
    byte_counts = [0 for _ in range(256)]
    for byte in data:
        byte_counts[byte] += 1
    return byte_counts


def coincidence(data):
    """
    Index of coincidence - probability two random bytes of data are equal.
    """
    if len(data) < 2:
        return 0.0
    return (sum(c * (c - 1) for c in histogram(data))
            / (len(data) * (len(data) - 1)))


"""
Text scoring
"""


def score(text):
    """
    Sum of English letter weights; most frequent letter weighs most.
    """
    if isinstance(text, (bytes, bytearray)):
        text = text.decode('latin-1')
    return sum(letter_weights.get(c, 0) for c in text)


def best_of(candidates):
    """
    Return candidate with highest score (first one wins ties).
    """
    best = None
    best_score = None
    for candidate in candidates:
        s = score(candidate)
        if best_score is None or s > best_score:
            best = candidate
            best_score = s
    return best


def is_text(data):
    try:
        text = data.decode('ascii')
    except UnicodeDecodeError:
        return False
    return all(c in string.printable for c in text)


"""
Padding
"""


def pkcs7_pad(data, blocksize=16):
    """
    Pad with PKCS#7 method - bytes (how many bytes to blocksize) up to blocksize.
    Aligned data are left untouched.

    Example (blocksize = 8):
        Ninja -> Ninja\x03\x03\x03
        Warrior -> Warrior\x01
        Evernote -> Evernote
    """
    if not 0 < blocksize < 256:
        raise ArgumentError('Block size must be in 1..255.')
    needed = (blocksize - len(data) % blocksize) % blocksize
    return data + bytes([needed]) * needed


def pkcs7_unpad(data, blocksize=16):
    """
    Remove PKCS#7, throw error if incorrect.
    """
    if not 0 < blocksize < 256:
        raise ArgumentError('Block size must be in 1..255.')
    if not data or len(data) % blocksize:
        raise DataError('Data length %d is not a multiple of %d.'
                        % (len(data), blocksize))
    padding_value = data[-1]
    if not 0 < padding_value <= blocksize:
        raise DataError('Invalid padding value 0x%02x.' % padding_value)
    for padding in data[-padding_value:]:
        if padding != padding_value:
            raise DataError('Invalid bytes in the padding.')
    return data[:-padding_value]


"""
Key=value records
"""

profile_fields = (b'email', b'uid', b'role')


def sanitize(value):
    return value.replace(b'&', b'').replace(b'=', b'')


def encode_profile(fields):
    """
    Encode (key, value) pairs as key=value&key=value...
    """
    for k, v in fields:
        if sanitize(k) != k or sanitize(v) != v:
            raise ArgumentError('Reserved character in field %r.' % k)
    return b'&'.join(k + b'=' + v for k, v in fields)


def parse_profile(data):
    """
    Parse email=...&uid=...&role=... into dict, DataError if malformed.
    """
    profile = {}
    pairs = data.split(b'&')
    if len(pairs) != len(profile_fields):
        raise DataError('Expected %d fields, got %d.'
                        % (len(profile_fields), len(pairs)))
    for expected, pair in zip(profile_fields, pairs):
        key, separator, value = pair.partition(b'=')
        if not separator or key != expected:
            raise DataError('Missing field %r.' % expected.decode())
        if b'=' in value:
            raise DataError('Garbled field %r.' % expected.decode())
        profile[key] = value
    if not profile[b'uid'].isdigit():
        raise DataError('Field uid is not numeric.')
    return profile


"""
Random functions
"""


def random_bytes(count, rng=None):
    rng = rng or random
    return bytes(rng.randint(0, 255) for _ in range(count))
