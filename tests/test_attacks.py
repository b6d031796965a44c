#!/usr/bin/python3
import random

import pytest

from rejewski.functions import *
from rejewski.classes import *
from rejewski.attacks import *

secret12 = Variable('base64:Um9sbGluJyBpbiBteSA1LjAKV2l0aCBteSByYWctdG9wIGRvd24gc28gbXkgaGFpciBjYW4gYmxvdwpUaGUgZ2lybGllcyBvbiBzdGFuZGJ5IHdhdmluZyBqdXN0IHRvIHNheSBoaQpEaWQgeW91IHN0b3A/IE5vLCBJIGp1c3QgZHJvdmUgYnkK', constant=True).as_raw()

message = (
    "the enigma machine was used by the german armed forces to protect "
    "their radio traffic, and for years its operators believed that the "
    "daily settings made the messages impossible to read without the key "
    "sheets. a small team of mathematicians in poland showed otherwise when "
    "they studied the repeated message keys at the start of every signal and "
    "rebuilt the wiring of the rotors from pure reasoning about permutations.\n"
    "later the work moved to england, where people at the park built large "
    "machines that tried every possible setting of the rotors against short "
    "guessed phrases called cribs, such as the weather report that was sent "
    "at the same time every morning. the lesson is still the same today: a "
    "cipher that lets the same input produce the same output will leak the "
    "structure of the plaintext to anyone patient enough to look for it."
).encode()


"""
XOR
"""


def test_crack_single_byte():
    ciphertext = unhexadecimal('1b37373331363f78151b7f2b783431333d78397828372d363c78373e783a393b3736')
    plaintext, key = crack_single_byte(ciphertext)
    assert plaintext == "Cooking MC's like a pound of bacon"
    assert key == ord('X')

    assert crack_single_byte(b'') is None
    # no key gives readable text
    assert crack_single_byte(bytes(range(256))) is None


def test_detect_single_byte_xor():
    rng = random.Random(4)
    ciphertexts = [random_bytes(30, rng) for _ in range(20)]
    ciphertexts.insert(13, repeating_xor(b'Now that the party is jumping\n', b'5'))
    index, plaintext, key = detect_single_byte_xor(ciphertexts)
    assert index == 13
    assert plaintext == 'Now that the party is jumping\n'
    assert key == ord('5')
    assert detect_single_byte_xor([]) is None


def test_estimate_key_length():
    key = b'\x8f\x3a\xd1\x5c\x27'
    ciphertext = repeating_xor(message, key)
    # multiples of the key length are as good as the length itself
    assert estimate_key_length(ciphertext) % len(key) == 0
    assert estimate_key_length(ciphertext, keysizes=[5]) == 5
    # too short to form a pair
    assert estimate_key_length(b'abc') is None
    with pytest.raises(ArgumentError):
        estimate_key_length(ciphertext, keysizes=[0])


def test_transpose():
    assert transpose(b'abcdefg', 3) == [b'adg', b'be', b'cf']
    assert shortest_period(b'ICEICEICE') == b'ICE'
    assert shortest_period(b'ICEIC') == b'ICEIC'
    assert shortest_period(b'AAAA') == b'A'


def test_break_repeating_key():
    ciphertext = repeating_xor(message, b'ICE')
    plaintext, key = break_repeating_key(ciphertext)
    assert key == b'ICE'
    assert plaintext == message.decode()

    key = b'\x8f\x3a\xd1\x5c\x27'
    plaintext, recovered = break_repeating_key(repeating_xor(message, key))
    assert recovered == key
    assert plaintext == message.decode()

    with pytest.raises(DataError):
        break_repeating_key(b'abc')


def test_break_repeating_key_short():
    stanza = b"Burning 'em, if you ain't quick and nimble\nI go crazy when I hear a cymbal"
    ciphertext = unhexadecimal('0b3637272a2b2e63622c2e69692a23693a2a3c6324202d623d63343c2a26226324272765272a282b2f20430a652e2c652a3124333a653e2b2027630c692b20283165286326302e27282f')
    assert ciphertext == repeating_xor(stanza, b'ICE')
    plaintext, key = break_repeating_key(ciphertext)
    assert key == b'ICE'
    assert plaintext == stanza.decode()
    # column with spaces turned into '!' must lose
    assert crack_single_byte(transpose(ciphertext, 3)[1])[1] == ord('C')


"""
Mode detection
"""


def test_detect_mode():
    key = b'YELLOW SUBMARINE'
    plaintext = b'0123456789abcdef' * 4
    ecb = AES('ecb', key).encrypt(plaintext)
    cbc = AES('cbc', key, iv=b'\x13' * 16).encrypt(plaintext)
    assert detect_mode(ecb, 16) == 'ecb'
    assert detect_mode(ecb, 16, plaintext=plaintext) == 'ecb'
    assert detect_mode(cbc, 16) == 'cbc'
    assert detect_mode(cbc, 16, plaintext=plaintext) == 'cbc'

    # single block of repeated text -> nothing to compare
    short = AES('ecb', key).encrypt(b'A' * 15)
    with pytest.raises(ArgumentError):
        detect_mode(short, 16)
    with pytest.raises(ArgumentError):
        detect_mode(ecb, 0)


def test_detect_mode_with_plaintext():
    # identical ciphertext blocks from different plaintext blocks do not count
    ciphertext = b'\x00' * 32
    assert detect_mode(ciphertext, 16) == 'ecb'
    assert detect_mode(ciphertext, 16, plaintext=b'a' * 16 + b'b' * 16) == 'cbc'
    # padding block has no plaintext counterpart
    assert detect_mode(ciphertext + b'\x00' * 16, 16, plaintext=b'a' * 16 + b'b' * 16) == 'cbc'


def test_detect_random_mode():
    for seed in range(16):
        ciphertext, mode = random_mode_encrypt(b'A' * 64, rng=random.Random(seed))
        assert detect_mode(ciphertext, 16) == mode


def test_find_ecb_ciphertext():
    rng = random.Random(8)
    key = random_bytes(16, rng)
    ciphertexts = [random_bytes(160, rng) for _ in range(10)]
    ciphertexts.insert(7, AES('ecb', key).encrypt(b'YELLOW SUBMARINE' * 8))
    ciphertexts.insert(0, b'short')
    assert find_ecb_ciphertext(ciphertexts) == 8
    assert find_ecb_ciphertext(ciphertexts[:5]) is None


"""
ECB chosen plaintext
"""


def test_find_blocksize():
    oracle = EncryptionOracle(suffix=secret12, rng=random.Random(12))
    assert find_blocksize(oracle.encrypt) == (16, len(secret12))
    oracle = EncryptionOracle(suffix=b'abc', prefix=b'0123456789', rng=random.Random(12))
    assert find_blocksize(oracle.encrypt) == (16, 13)
    with pytest.raises(DataError):
        find_blocksize(lambda payload: b'\x00' * 16)


def test_find_prefix_length():
    for prefix_length in (0, 1, 5, 15, 16, 17, 37):
        oracle = EncryptionOracle(suffix=b'AAAA secret', prefix=b'A' * prefix_length,
                                  rng=random.Random(prefix_length))
        assert find_prefix_length(oracle.encrypt, 16) == prefix_length


def test_ecb_byte_recovery():
    oracle = EncryptionOracle(suffix=secret12, rng=random.Random(12))
    recovery = EcbByteRecovery(oracle)
    result = recovery.run()
    assert result.blocksize == 16
    assert result.prefix_length == 0
    assert result.secret == secret12
    assert result.secret.startswith(b"Rollin' in my 5.0\n")
    assert result.complete
    assert recovery.state == EcbByteRecovery.DONE


def test_ecb_byte_recovery_random_prefix():
    oracle = EncryptionOracle.with_random_prefix(secret12, prefix_range=(5, 15),
                                                 rng=random.Random(14))
    result = EcbByteRecovery(oracle, thread_count=4).run()
    assert result.blocksize == 16
    assert result.prefix_length == len(oracle.prefix)
    assert 5 <= result.prefix_length <= 15
    assert result.secret == secret12
    assert result.complete


def test_ecb_byte_recovery_prefixes():
    for seed in range(5):
        rng = random.Random(seed)
        prefix = random_bytes(rng.randint(0, 40), rng)
        oracle = EncryptionOracle(suffix=b'YELLOW SUBMARINE\x01\x02', prefix=prefix, rng=rng)
        result = EcbByteRecovery(oracle, thread_count=1).run()
        assert result.prefix_length == len(prefix)
        assert result.secret == b'YELLOW SUBMARINE\x01\x02'


def test_ecb_chosen_plaintext():
    oracle = EncryptionOracle(suffix=b'', rng=random.Random(3))
    assert ecb_chosen_plaintext(oracle) == b''
    oracle = EncryptionOracle(suffix=b'x', rng=random.Random(3))
    assert ecb_chosen_plaintext(oracle, filler=b'B') == b'x'
    with pytest.raises(ArgumentError):
        EcbByteRecovery(oracle, filler=b'AB')


class CBCOracle:
    def __init__(self):
        self.aes = AES('cbc', b'YELLOW SUBMARINE', iv=b'\x01' * 16)

    def encrypt(self, payload):
        return self.aes.encrypt(payload + secret12)


def test_ecb_byte_recovery_rejects_cbc():
    recovery = EcbByteRecovery(CBCOracle())
    with pytest.raises(DataError):
        recovery.run()
    assert recovery.state == EcbByteRecovery.DETECT_MODE
    assert recovery.blocksize == 16
    assert recovery.secret == b''


class StubbornRecovery(EcbByteRecovery):
    """
    Stops matching after 3 bytes.
    """
    def query(self, candidates, start, reference):
        if len(self.secret) >= 3:
            return []
        return super().query(candidates, start, reference)


def test_ecb_byte_recovery_without_match():
    oracle = EncryptionOracle(suffix=secret12, rng=random.Random(5))
    result = StubbornRecovery(oracle).run()
    assert result.secret == b'Rol'
    assert not result.complete


"""
ECB cut-and-paste
"""


def test_ecb_cut_paste():
    oracle = ProfileOracle(rng=random.Random(13))
    assert oracle.decrypt(oracle.encrypt(b'foo@bar.com'))[b'role'] == b'user'

    forged, profile = ecb_cut_paste(oracle.encrypt, oracle.decrypt)
    assert profile[b'role'] == b'admin'
    assert profile[b'uid'] == b'10'
    assert oracle.decrypt(forged) == profile


def test_ecb_cut_paste_other_layout():
    oracle = ProfileOracle(uid=31337, role=b'guest', rng=random.Random(21))
    forged, profile = ecb_cut_paste(oracle.encrypt, oracle.decrypt,
                                    expected=b'guest', desired=b'root')
    assert profile[b'role'] == b'root'
    assert profile[b'uid'] == b'31337'


def test_ecb_cut_paste_errors():
    oracle = ProfileOracle(rng=random.Random(13))
    with pytest.raises(ArgumentError):
        ecb_cut_paste(oracle.encrypt, oracle.decrypt, desired=b'admin&uid=0')
    with pytest.raises(ArgumentError):
        ecb_cut_paste(oracle.encrypt, oracle.decrypt, desired=b'administrator of all')
    with pytest.raises(ArgumentError):
        ecb_cut_paste(oracle.encrypt, oracle.decrypt, desired=b'')

    # desired value elsewhere in the record does not count
    decoy = lambda ciphertext: {b'email': b'admin', b'uid': b'10', b'role': b'user'}
    with pytest.raises(DataError):
        ecb_cut_paste(oracle.encrypt, decoy)

    cbc = AES('cbc', b'YELLOW SUBMARINE', iv=b'\x01' * 16)
    with pytest.raises(DataError):
        ecb_cut_paste(lambda email: cbc.encrypt(oracle.profile_for(email)),
                      lambda ciphertext: parse_profile(cbc.decrypt(ciphertext)))
