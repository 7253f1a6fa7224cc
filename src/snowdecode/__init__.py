from snowdecode.exc import *
from snowdecode.types import (
    ArrayType,
    FieldDescriptor,
    MapType,
    ObjectType,
    Row,
    ScalarType,
    TypeDescriptor,
    TypeKind,
)
from snowdecode.formatting import SessionFormattingContext
from snowdecode.parse import as_descriptor, descriptor_from_metadata, parse_type_string
from snowdecode.conversion import ScalarValueConverter
from snowdecode.decoder import StructuredValueDecoder
from snowdecode.serializer import serialize
from snowdecode.result_set import ResultColumn, StructuredResultSet

__version__ = "1.0.0"

# Decoders share no mutable state, threads may share the module and descriptors
threadsafety = 2

# Structured kind names accepted by SessionFormattingContext.fetch_as_string
OBJECT = TypeKind.OBJECT.value
ARRAY = TypeKind.ARRAY.value
MAP = TypeKind.MAP.value


def decode(raw, declaration, context=None, as_string=False):
    """
    Decode one raw structured value.

    `declaration` may be a TypeDescriptor, a type string such as
    ``"OBJECT(a VARCHAR)"`` or a row-type metadata dictionary.
    """
    decoder = StructuredValueDecoder(context)
    return decoder.decode_column(None, raw, as_descriptor(declaration), as_string)
