#!/usr/bin/python3
"""
Classes of more complex objects
"""
import base64
import random
import string
import threading

from Crypto.Cipher import AES as AESCipher
from Crypto.Util.Padding import pad, unpad
from PIL import Image

from rejewski.lib import *
from rejewski.functions import *

"""
Vital classes
"""
class Parallelizer():
    """
    This class runs given function on given data on multiple threads.

    The function is called as function(indices, samples, thread_ref, **kwargs)
    for each chunk and must return a list; lists are concatenated
    in chunk order.
    """
    def __init__(self, thread_count, data, function, kwargs=None):
        self.thread_count = max(1, thread_count)
        self.data = data
        self.function = function
        self.threads = []
        self.results = []
        self.kwargs = kwargs or {}

    def start(self):
        chunk_size = -(-len(self.data) // self.thread_count)
        if not chunk_size:
            return
        indexed_data = list(enumerate(self.data))
        self.threads = [ParallelizerThread(chunk, self.function, self.kwargs)
                        for chunk in chunks(indexed_data, chunk_size)]
        for t in self.threads:
            t.start()

    def waitfor(self):
        for t in self.threads:
            t.join()
        self.results = []
        for t in self.threads:
            if t.error:
                raise t.error
            self.results += t.results
        return self.results

    def stop(self):
        for t in self.threads:
            t.stop()
        return self.waitfor()


class ParallelizerThread(threading.Thread):
    """
    Thread for Parallelizer class.
    """
    def __init__(self, data, function, kwargs):
        threading.Thread.__init__(self)
        self.data = data
        self.function = function
        self.results = []
        self.error = None
        self.kwargs = kwargs
        self.terminate = False

    def run(self):
        indices, samples = zip(*self.data)
        debug('Running thread (samples %d through %d).'
              % (indices[0], indices[-1]))
        try:
            self.results = self.function(indices, samples, thread_ref=self, **(self.kwargs))
        except Exception as e:
            self.error = e

    def stop(self):
        self.terminate = True


class OracleResult:
    """
    Simple object for Oracle data passing.
    """
    def __init__(self, payload_id, output):
        self.payload_id = payload_id
        self.output = output

    def __repr__(self):
        return 'OracleResult(%r, %d B)' % (self.payload_id, len(self.output))

####################################################
class Variable:
    """
    Class loads given value (from user, file, etc.)
    and can yield different representations.
    """
    def __init__(self, value, constant=False):
        self.preferred_form = self.as_escaped
        if isinstance(value, Variable):
            self.value = value.value
            self.preferred_form = value.preferred_form
            return

        if isinstance(value, int):
            self.value = int_to_bytes(value)
            self.preferred_form = self.as_int
            return

        if isinstance(value, bytearray):
            value = bytes(value)
        if isinstance(value, bytes):
            self.value = value
            if is_text(value):
                self.preferred_form = self.as_raw
            return

        if constant:
            # value in quotes - as string
            if len(value) > 1 and value[0] in ('\'', '"') and value[-1] == value[0]:
                self.value = value[1:-1].encode()
                self.preferred_form = self.as_raw
                return
            # starts with 'file:' - load as bytes
            if value.startswith('file:'):
                try:
                    with open(value[5:], 'rb') as f:
                        self.value = f.read()
                except OSError as e:
                    raise ArgumentError('Cannot read \'%s\': %s' % (value[5:], e))
                return
            # starts with 'base64:' - decode
            if value.startswith('base64:'):
                try:
                    self.value = base64.b64decode(value[7:], validate=True)
                except ValueError:
                    raise DataError('Cannot decode \'%s\' as Base64.' % value)
                if is_text(self.value):
                    self.preferred_form = self.as_raw
                return
            # starts with 'image:' - load grayscale pixel values row by row
            if value.startswith('image:'):
                try:
                    image = Image.open(value[6:]).convert('L')
                except OSError as e:
                    raise DataError('Cannot decode \'%s\' as image: %s' % (value[6:], e))
                debug('Loaded image; width = %d, height = %d' % image.size)
                self.value = image.tobytes()
                return

        # value as int
        try:
            self.value = int_to_bytes(int(value))
            self.preferred_form = self.as_int
            return
        except ValueError:
            pass
        # value as hex number/stream
        try:
            self.value = unhexadecimal(value)
            self.preferred_form = self.as_hex
            return
        except DataError:
            pass
        # finally, use as string
        if constant:
            self.value = value.encode()
            self.preferred_form = self.as_raw
            return
        raise ArgumentError('Cannot parse value %r.' % value)

    """
    representation methods
    """
    def as_int(self):
        return bytes_to_int(self.value)

    def as_hex(self):
        return '0x' + hexadecimal(self.value).decode()

    def as_raw(self):
        return self.value

    def as_escaped(self):
        #  \xAA values
        return ''.join(chr(c)
                       if chr(c) in string.printable and chr(c) not in '\t\n\r\x0b\x0c'
                       else ('\\x%02x' % c)
                       for c in self.value)

    def as_base64(self):
        return base64.b64encode(self.value).decode()

    def short(self):
        preferred = str(self)
        if len(preferred) > 50:
            preferred = preferred[:24] + '...' + preferred[-24:]
        return preferred.replace('\n', '\\n').replace('\r', '\\r')

    def __str__(self):
        preferred = self.preferred_form()
        if type(preferred) == bytes:
            return preferred.decode('latin-1')
        return str(preferred)

    def __repr__(self):
        return str(self)

    def __len__(self):
        return len(self.value)

#############################################

class AES():
    """
    AES in ECB or CBC mode with standard PKCS#7 padding.

    Block function comes from pycryptodome, CBC chaining is done here.
    """
    modes = ('ecb', 'cbc')

    def __init__(self, mode, key, iv=None):
        if mode not in AES.modes:
            raise ArgumentError('Unsupported mode %r.' % (mode,))
        if len(key) not in AESCipher.key_size:
            raise ArgumentError('Invalid key length %d.' % len(key))
        if mode == 'cbc' and (iv is None or len(iv) != AESCipher.block_size):
            raise ArgumentError('CBC mode needs %d B IV.' % AESCipher.block_size)
        self.mode = mode
        self.key = bytes(key)
        self.iv = bytes(iv) if iv is not None else None
        self.blocksize = AESCipher.block_size

    def encrypt(self, plaintext):
        # new ECB object for each call, so the instance can be shared by threads
        cipher = AESCipher.new(self.key, AESCipher.MODE_ECB)
        padded = pad(bytes(plaintext), self.blocksize)
        if self.mode == 'ecb':
            return cipher.encrypt(padded)
        """
               P1      P2
               |       |
        IV ---(X)  ,--(X)
               |   |   |
        key --AES  |  AES-- key
               |___|   |__ ...
               C1      C2
        """
        ciphertext = b''
        previous_block = self.iv
        for block in chunks(padded, self.blocksize):
            previous_block = cipher.encrypt(xor(block, previous_block))
            ciphertext += previous_block
        return ciphertext

    def decrypt(self, ciphertext):
        if not ciphertext or len(ciphertext) % self.blocksize:
            raise DataError('Ciphertext length %d is not a multiple of %d.'
                            % (len(ciphertext), self.blocksize))
        cipher = AESCipher.new(self.key, AESCipher.MODE_ECB)
        if self.mode == 'ecb':
            padded = cipher.decrypt(ciphertext)
        else:
            padded = b''
            previous_block = self.iv
            for block in chunks(ciphertext, self.blocksize):
                padded += xor(cipher.decrypt(block), previous_block)
                previous_block = block
        try:
            return unpad(padded, self.blocksize)
        except ValueError as e:
            raise DataError('Invalid padding: %s' % e)

#############################################

class EncryptionOracle():
    """
    ECB oracle encrypting prefix + payload + suffix under a fixed key.

    Key, prefix and suffix are set once in constructor; repeated queries
    with the same payload give the same ciphertext.
    """
    def __init__(self, suffix=b'', prefix=b'', key=None, rng=None):
        rng = rng or random.SystemRandom()
        self._key = bytes(key) if key is not None else random_bytes(16, rng)
        self._prefix = bytes(prefix)
        self._suffix = bytes(suffix)
        self._aes = AES('ecb', self._key)

    @classmethod
    def with_random_prefix(cls, suffix=b'', prefix_range=prefix_length_range, key=None, rng=None):
        """
        Oracle with non-empty random prefix of length from prefix_range
        (inclusive). The prefix is drawn only here.
        """
        low, high = prefix_range
        if low < 1 or high < low:
            raise ArgumentError('Invalid prefix range %r.' % (prefix_range,))
        rng = rng or random.SystemRandom()
        prefix = random_bytes(rng.randint(low, high), rng)
        return cls(suffix=suffix, prefix=prefix, key=key, rng=rng)

    @property
    def key(self):
        return self._key

    @property
    def prefix(self):
        return self._prefix

    @property
    def suffix(self):
        return self._suffix

    def encrypt(self, payload):
        return self._aes.encrypt(self._prefix + bytes(payload) + self._suffix)


def random_mode_encrypt(data, rng=None):
    """
    Encrypt data surrounded by 5-10 random bytes under random key,
    randomly using ECB or CBC. Returns (ciphertext, mode).
    """
    rng = rng or random.SystemRandom()
    key = random_bytes(16, rng)
    plaintext = (random_bytes(rng.randint(5, 10), rng)
                 + bytes(data)
                 + random_bytes(rng.randint(5, 10), rng))
    if rng.randint(0, 1):
        mode = 'ecb'
        aes = AES('ecb', key)
    else:
        mode = 'cbc'
        aes = AES('cbc', key, iv=random_bytes(16, rng))
    return (aes.encrypt(plaintext), mode)


class ProfileOracle():
    """
    Encrypts 'email=...&uid=10&role=user' records with AES-ECB, email is
    controlled by user. The value is sanitized, so no &s or =s get in.
    Decryption returns parsed fields.
    """
    def __init__(self, uid=10, role=b'user', key=None, rng=None):
        rng = rng or random.SystemRandom()
        self.uid = uid
        self.role = role
        self._aes = AES('ecb', bytes(key) if key is not None else random_bytes(16, rng))

    def profile_for(self, email):
        return encode_profile([(b'email', sanitize(bytes(email))),
                               (b'uid', b'%d' % self.uid),
                               (b'role', self.role)])

    def encrypt(self, email):
        return self._aes.encrypt(self.profile_for(email))

    def decrypt(self, ciphertext):
        return parse_profile(self._aes.decrypt(ciphertext))
