#!/usr/bin/python3
"""
Sophisticated attacks are here
"""
from collections import namedtuple

from rejewski import lib
from rejewski import log
from rejewski.lib import *
from rejewski.functions import *
from rejewski.classes import *

"""
XOR
"""


def crack_single_byte(ciphertext):
    """
    Try all 256 single-byte keys, return (plaintext, key) of the best
    scoring readable result or None.
    """
    candidates = []
    keys = []
    for key in range(256):
        decrypted = repeating_xor(ciphertext, bytes([key]))
        if not is_text(decrypted):
            continue
        candidates.append(decrypted.decode('ascii'))
        keys.append(key)
    best = best_of(candidates)
    if best is None or not score(best):
        return None
    return (best, keys[candidates.index(best)])


def detect_single_byte_xor(ciphertexts):
    """
    Find which of given buffers is single-byte XOR ciphertext.
    Returns (index, plaintext, key) or None.
    """
    result = None
    best_score = 0
    for index, ciphertext in enumerate(ciphertexts):
        cracked = crack_single_byte(ciphertext)
        if cracked is None:
            continue
        s = score(cracked[0])
        if s > best_score:
            result = (index, cracked[0], cracked[1])
            best_score = s
    if result:
        debug('Line %d looks like single-byte XOR (key 0x%02x).'
              % (result[0], result[2]))
    return result


def estimate_key_length(data, keysizes=None):
    """
    Get normalized hamming distance of consecutive chunks for each keysize,
    smallest should be correct. Keysizes without a chunk pair are skipped.

    Multiples of the real key length score about as well as the real one.
    """
    if keysizes is None:
        keysizes = range(keysize_range[0], keysize_range[1] + 1)
    distances = {}
    for keysize in keysizes:
        if keysize < 1:
            raise ArgumentError('Key size must be positive.')
        samples = [c for c in chunks(data, keysize) if len(c) == keysize]
        if len(samples) < 2:
            continue
        total = sum(hamming(samples[i], samples[i+1])
                    for i in range(len(samples) - 1))
        distances[keysize] = total / (len(samples) - 1) / keysize
    if not distances:
        return None
    best = min(distances, key=lambda k: distances[k])
    debug('Best keysize %d (distance %.3f)' % (best, distances[best]))
    return best


def coincidence_key_length(data, keysizes=None, tolerance=0.8):
    """
    Smallest keysize whose columns look like single-alphabet text.

    Columns of the right keysize (and of its multiples) keep the
    coincidence index of the plaintext, other keysizes mix alphabets
    and get lower value. Works even if key bytes differ in few bits,
    where hamming distance does not help.
    """
    if keysizes is None:
        keysizes = range(keysize_range[0], keysize_range[1] + 1)
    indices = {}
    for keysize in keysizes:
        if len(data) < 4 * keysize:
            continue
        columns = transpose(data, keysize)
        indices[keysize] = sum(coincidence(c) for c in columns) / len(columns)
    if not indices:
        return None
    threshold = max(indices.values()) * tolerance
    return min(k for k, v in indices.items() if v >= threshold)


def transpose(data, keysize):
    """
    Bucket i holds every byte XORed with i-th key byte.
    """
    return [data[offset::keysize] for offset in range(keysize)]


def shortest_period(key):
    for period in range(1, len(key)):
        if len(key) % period == 0 and key == key[:period] * (len(key) // period):
            return key[:period]
    return key


def break_repeating_key(data):
    """
    Break repeating-key XOR, return (plaintext, key).
    """
    keysize = estimate_key_length(data)
    if keysize is None:
        raise DataError('Ciphertext is too short to estimate key length.')
    periodic = coincidence_key_length(data)
    if periodic is not None and periodic != keysize:
        debug('Hamming distance suggests keysize %d, coincidence index %d.'
              % (keysize, periodic))
        keysize = periodic
    debug('Trying keysize %d.' % keysize)
    key = b''
    for offset, transposed in enumerate(transpose(data, keysize)):
        cracked = crack_single_byte(transposed)
        if cracked is None:
            raise DataError('Column %d does not decode to text.' % offset)
        key += bytes([cracked[1]])
        debug('Adding 0x%02x to key.' % key[-1])
    key = shortest_period(key)
    plaintext = repeating_xor(data, key)
    if not is_text(plaintext):
        raise DataError('Decrypted data is not text.')
    log.info('Revealed XOR key:', Variable(key))
    return (plaintext.decode('ascii'), key)


"""
Block cipher mode
"""


def detect_mode(ciphertext, blocksize=aes_blocksize, plaintext=None):
    """
    Tell 'ecb' from 'cbc' by looking for identical ciphertext blocks.

    If plaintext is given, only blocks with identical plaintext are
    compared. Without it short ciphertexts are often reported as CBC
    even if ECB was used, simply because they have no repeated block.
    """
    if blocksize < 1:
        raise ArgumentError('Block size must be positive.')
    if len(ciphertext) < 2 * blocksize:
        raise ArgumentError('At least %d B of ciphertext is needed, got %d.'
                            % (2 * blocksize, len(ciphertext)))
    c_blocks = [b for b in chunks(ciphertext, blocksize) if len(b) == blocksize]
    p_blocks = (chunks(plaintext, blocksize)
                if plaintext is not None else None)
    for i in range(len(c_blocks)):
        for j in range(i + 1, len(c_blocks)):
            if p_blocks is not None:
                if (j >= len(p_blocks)
                        or len(p_blocks[j]) != blocksize
                        or not equal(p_blocks[i], p_blocks[j])):
                    continue
            if equal(c_blocks[i], c_blocks[j]):
                debug('Blocks %d and %d are identical -> ECB.' % (i, j))
                return 'ecb'
    return 'cbc'


def find_ecb_ciphertext(ciphertexts, blocksize=aes_blocksize):
    """
    Return index of first ciphertext with repeated blocks.
    """
    for index, ciphertext in enumerate(ciphertexts):
        if len(ciphertext) < 2 * blocksize:
            continue
        if detect_mode(ciphertext, blocksize) == 'ecb':
            return index
    return None


"""
ECB chosen plaintext
"""


def find_blocksize(encrypt, filler=b'A', max_blocksize=max_blocksize):
    """
    Prepend A, AA, AAA, ... until ciphertext grows. Returns
    (blocksize, fixed_length), where fixed_length is length of all
    data the oracle adds to the payload.
    """
    initial_length = len(encrypt(b''))
    for payload_length in range(1, max_blocksize + 1):
        length = len(encrypt(filler * payload_length))
        if length > initial_length:
            blocksize = length - initial_length
            fixed_length = initial_length - payload_length
            debug('Block size:', blocksize)
            debug('Length of fixed data:', fixed_length)
            return (blocksize, fixed_length)
    raise DataError('Ciphertext length does not change -> cannot determine block size.')


def find_prefix_length(encrypt, blocksize, filler=b'A'):
    """
    Determine how many bytes the oracle puts before the payload.

    Two probes differing in one byte reveal the block where the payload
    starts. Then filler is added until probes differing only in their last
    byte give the same block -> that block is filled.
    """
    first = chunks(encrypt(b'\x00'), blocksize)
    second = chunks(encrypt(b'\x01'), blocksize)
    start_block = next((i for i in range(min(len(first), len(second)))
                        if not equal(first[i], second[i])), None)
    if start_block is None:
        raise DataError('Payload does not affect ciphertext.')
    position = start_block * blocksize
    for count in range(1, blocksize + 1):
        a = encrypt(filler * count + b'\x00')[position:position+blocksize]
        b = encrypt(filler * count + b'\x01')[position:position+blocksize]
        if equal(a, b):
            prefix_length = position + blocksize - count
            debug('Payload starts in block %d, prefix length: %d'
                  % (start_block, prefix_length))
            return prefix_length
    raise DataError('Block %d does not stabilize -> probably not ECB.' % start_block)


RecoveryResult = namedtuple('RecoveryResult',
                            ['blocksize', 'prefix_length', 'secret', 'complete'])


class EcbByteRecovery():
    """
    ECB Chosen Plaintext Attack

    We can decrypt data appended by the oracle if part of the plaintext is
    under our control, even if unknown data is prepended.

    Prepend block 1 byte short, e.g. 'AAAAAAA_', and get the ciphertext.
    The last byte of the block is first unknown byte. Then get ciphertexts
    for all 256 values of the last byte; the matching one reveals it.
    Continue with shorter filler and revealed bytes, block after block.
    """
    DETECT_BLOCKSIZE = 'detect_blocksize'
    DETECT_MODE = 'detect_mode'
    DETECT_PREFIX_LENGTH = 'detect_prefix_length'
    RECOVER_BYTES = 'recover_bytes'
    DONE = 'done'

    def __init__(self, oracle, filler=b'A', thread_count=None):
        if len(filler) != 1:
            raise ArgumentError('Filler must be a single byte.')
        self.oracle = oracle
        self.filler = filler
        self.thread_count = thread_count or lib.thread_count
        self.state = EcbByteRecovery.DETECT_BLOCKSIZE
        self.blocksize = None
        self.fixed_length = None
        self.prefix_length = None
        self.secret = b''
        self.complete = False

    def run(self):
        self.determine_blocksize()
        self.determine_mode()
        self.determine_prefix_length()
        self.recover_bytes()
        self.state = EcbByteRecovery.DONE
        if self.complete:
            log.ok('Recovered %d B:' % len(self.secret), Variable(self.secret).short())
        return RecoveryResult(self.blocksize, self.prefix_length,
                              self.secret, self.complete)

    def determine_blocksize(self):
        self.state = EcbByteRecovery.DETECT_BLOCKSIZE
        debug('Looking for block size...')
        self.blocksize, self.fixed_length = find_blocksize(self.oracle.encrypt,
                                                           self.filler)

    def determine_mode(self):
        self.state = EcbByteRecovery.DETECT_MODE
        # 3 blocks give 2 aligned identical blocks whatever the prefix is
        ciphertext = self.oracle.encrypt(self.filler * (3 * self.blocksize))
        mode = detect_mode(ciphertext, self.blocksize)
        if mode != 'ecb':
            log.err('Could not find repeating blocks -> probably not ECB.')
            raise DataError('Oracle does not use ECB mode (detected %s).' % mode)
        debug('Mode: ECB')

    def determine_prefix_length(self):
        self.state = EcbByteRecovery.DETECT_PREFIX_LENGTH
        self.prefix_length = find_prefix_length(self.oracle.encrypt,
                                                self.blocksize, self.filler)

    def recover_bytes(self):
        self.state = EcbByteRecovery.RECOVER_BYTES
        blocksize = self.blocksize
        secret_length = self.fixed_length - self.prefix_length
        # filler completing the prefix block
        lead = (blocksize - self.prefix_length % blocksize) % blocksize
        first_block = (self.prefix_length + lead) // blocksize
        debug('Decryption will start at block %d, %d B expected.'
              % (first_block, secret_length))

        while len(self.secret) < secret_length:
            position = len(self.secret)
            payload = self.filler * (lead + blocksize - 1 - position % blocksize)
            block_index = first_block + position // blocksize
            blocks = chunks(self.oracle.encrypt(payload), blocksize)
            if block_index >= len(blocks):
                log.warn('No reference block for byte #%d.' % position)
                break
            reference = blocks[block_index]
            candidates = [payload + self.secret + bytes([value])
                          for value in range(256)]
            matching = self.query(candidates, block_index * blocksize, reference)
            if not matching:
                log.warn('No candidate matches byte #%d, stopping.' % position)
                break
            self.secret += bytes([matching[0].payload_id])
            debug('Plaintext:', Variable(self.secret).short())
        self.complete = len(self.secret) == secret_length

    def query(self, candidates, start, reference):
        """
        Encrypt candidates on multiple threads, return matching results
        ordered by candidate index.
        """
        parallelizer = Parallelizer(self.thread_count, candidates,
                                    self.match_candidates,
                                    {'start': start, 'reference': reference})
        parallelizer.start()
        matching = parallelizer.waitfor()
        return sorted(matching, key=lambda r: r.payload_id)

    def match_candidates(self, indices, samples, thread_ref=None, start=0, reference=b''):
        matching = []
        for payload_id, payload in zip(indices, samples):
            if thread_ref is not None and thread_ref.terminate:
                break
            output = self.oracle.encrypt(payload)
            if equal(output[start:start+len(reference)], reference):
                matching.append(OracleResult(payload_id, output))
        return matching


def ecb_chosen_plaintext(oracle, **kwargs):
    """
    Recover data appended by ECB oracle (see EcbByteRecovery).
    """
    return EcbByteRecovery(oracle, **kwargs).run().secret


"""
ECB cut-and-paste
"""


def ecb_cut_paste(encrypt, decrypt, expected=b'user', desired=b'admin', filler=b'x'):
    """
    ECB cut-and-paste

    With control of portion of the plaintext, we can create fake blocks
    that we can feed into decryption routine, in this case resulting in
    authorization bypass.

    The expected value to spoof must be at the end of the record. The
    payload starts with filler completing the current block, then comes the
    padded desired value and filler aligning the expected value to a block
    start. The expected block is then replaced with the fake one.

    Returns (forged ciphertext, decrypted fields).
    """
    if not desired:
        raise ArgumentError('Desired value cannot be empty.')
    if sanitize(desired) != desired:
        raise ArgumentError('Desired value cannot contain reserved characters.')
    blocksize, fixed_length = find_blocksize(encrypt, filler)
    if len(expected) >= blocksize or len(desired) >= blocksize:
        raise ArgumentError('Values must fit in a single %d B block.' % blocksize)
    if detect_mode(encrypt(filler * (3 * blocksize)), blocksize) != 'ecb':
        log.err('No patterns present -> probably not ECB.')
        raise DataError('Encryption oracle does not use ECB mode.')

    payload_offset = find_prefix_length(encrypt, blocksize, filler)
    # data between payload and expected value
    payload_to_expected = fixed_length - payload_offset - len(expected)
    if payload_to_expected < 0:
        raise DataError('Expected value does not follow the payload.')
    debug('Payload offset:', payload_offset)
    debug('Found difference: %d.' % payload_to_expected)

    lead = (blocksize - payload_offset % blocksize) % blocksize
    fake_block_index = (payload_offset + lead) // blocksize
    trail = -(payload_offset + lead + payload_to_expected) % blocksize
    fake_block = pkcs7_pad(desired, blocksize)
    payload = filler * lead + fake_block + filler * trail
    debug('Using', Variable(payload), 'as final payload, len:', len(payload))

    encrypted_chunks = chunks(encrypt(payload), blocksize)
    # drop the expected chunk, put fake chunk in its place
    reordered = b''.join(encrypted_chunks[:fake_block_index]
                         + encrypted_chunks[fake_block_index+1:-1]
                         + [encrypted_chunks[fake_block_index]])
    decrypted = decrypt(reordered)
    debug('Decrypted message:', decrypted)
    # expected value was the last field
    if list(decrypted.values())[-1] != desired:
        raise DataError('Forged record does not end with desired value.')
    log.ok('Forged record with role', Variable(desired))
    return (reordered, decrypted)
