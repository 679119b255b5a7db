import binascii


bytes_types = (bytes, bytearray)


def to_string(value):
  if isinstance(value, bytes_types):
    return bytes(value)
  elif isinstance(value, str):
    return value.encode()
  return str(value).encode()


def to_hex(value):
  return to_string(value).hex()


def from_hex(value):
  """Decodes a hexadecimal string, bytes are returned untouched."""
  if isinstance(value, bytes_types):
    return bytes(value)
  try:
    return bytes.fromhex(value)
  except (TypeError, ValueError) as error:
    raise binascii.Error(f'Not a hexadecimal string: {value!r}') from error


def largest_power_of_two_below(n):
  # k such that k < n <= 2k, only defined for n > 1
  if n < 2:
    raise ValueError(f'Expected n > 1, got {n}')
  return 1 << ((n - 1).bit_length() - 1)


def bit_levels(n):
  """Returns the levels of the set bits of n, highest first."""
  return tuple(level for level in range(n.bit_length() - 1, -1, -1)
               if n >> level & 1)
