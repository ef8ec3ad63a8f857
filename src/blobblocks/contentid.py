"""ContentId names every block stored by a BlockStore"""
import hashlib
import logging
from collections import namedtuple
from blobblocks.blockstore_exceptions import UnsupportedAlgorithm

# Self-describing hash codes for the hashlib algorithms blocks can be addressed with
ALGORITHM_CODES = {
    "sha1": 0x11,
    "sha256": 0x12,
    "sha512": 0x13,
    "sha3_512": 0x14,
    "sha3_384": 0x15,
    "sha3_256": 0x16,
    "sha3_224": 0x17,
    "sha384": 0x20,
    "md5": 0xD5,
}
CODE_ALGORITHMS = {code: algorithm for algorithm, code in ALGORITHM_CODES.items()}


def clean_algorithm(algorithm_string):
    """Format an algorithm string (ex. "SHA-256") into its `hashlib` name and ensure
    a content identifier code exists for it.

    :param str algorithm_string: Algorithm to validate.

    :return: `hashlib` supported algorithm string.
    :rtype: str
    """
    count = 0
    for char in algorithm_string:
        if char.isdigit():
            count += 1
    if count > 3:
        cleaned_string = algorithm_string.lower().replace("-", "_")
    else:
        cleaned_string = algorithm_string.lower().replace("-", "").replace("_", "")
    if cleaned_string not in ALGORITHM_CODES:
        exception_string = (
            "ContentId - clean_algorithm: Algorithm not supported: " + cleaned_string
        )
        logging.error(exception_string)
        raise UnsupportedAlgorithm(exception_string)
    return cleaned_string


def _encode_varint(value):
    encoded = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            encoded.append(byte | 0x80)
        else:
            encoded.append(byte)
            return bytes(encoded)


def _decode_varint(data, offset):
    """Read an unsigned varint from `data` at `offset`.

    :return: Tuple of the decoded value and the offset following it.
    :rtype: tuple
    """
    value = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise ValueError("Truncated varint in content identifier")
        byte = data[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset
        shift += 7
        if shift > 63:
            raise ValueError("Varint in content identifier is too long")


class ContentId(namedtuple("ContentId", ["algorithm", "digest"])):
    """Content identifier of a block: the hash algorithm used plus the raw digest.

    The binary form is the algorithm code and the digest length (both unsigned
    varints) followed by the digest. Its lowercase hex rendering is what a
    BlockStore uses to name objects.

    :param str algorithm: `hashlib` name of the algorithm (ex. "sha256").
    :param bytes digest: Raw digest bytes.
    """

    @classmethod
    def compute(cls, data, algorithm="sha256"):
        """Hash `data` (bytes, str, or an iterable of byte chunks) into a ContentId.

        :param mixed data: Content to hash.
        :param str algorithm: Algorithm to hash with.

        :return: ContentId of the content.
        :rtype: ContentId
        """
        checked_algorithm = clean_algorithm(algorithm)
        hashobj = hashlib.new(checked_algorithm)
        if isinstance(data, str):
            data = data.encode("utf-8")
        if isinstance(data, (bytes, bytearray, memoryview)):
            hashobj.update(data)
        else:
            for chunk in data:
                hashobj.update(chunk)
        return cls(checked_algorithm, hashobj.digest())

    @classmethod
    def from_bytes(cls, data):
        """Parse the binary form of a content identifier.

        :raises ValueError: If the bytes are truncated, have trailing data, or carry
            an unknown algorithm code.
        """
        code, offset = _decode_varint(data, 0)
        length, offset = _decode_varint(data, offset)
        if code not in CODE_ALGORITHMS:
            raise ValueError(f"Unknown content identifier algorithm code: {code:#x}")
        digest = bytes(data[offset:])
        if len(digest) != length:
            raise ValueError(
                f"Content identifier digest length {len(digest)} does not match"
                + f" encoded length {length}"
            )
        return cls(CODE_ALGORITHMS[code], digest)

    @classmethod
    def parse(cls, hex_string):
        """Parse a hex string (as returned by `hex`) into a ContentId.

        :raises ValueError: If the string is not hexadecimal or is not a valid
            content identifier.
        """
        return cls.from_bytes(bytes.fromhex(hex_string))

    def to_bytes(self):
        code = ALGORITHM_CODES[self.algorithm]
        return _encode_varint(code) + _encode_varint(len(self.digest)) + self.digest

    def hex(self):
        """Lowercase hex string of the binary form."""
        return self.to_bytes().hex()

    def __str__(self):
        return self.hex()
