"""fhirtree - schema-driven decoding of FHIR resources into typed property trees."""

from fhirtree.config import DecoderConfig
from fhirtree.core.serialization import node_to_dict, wrap_extensions
from fhirtree.decoding import Decoder

__version__ = "0.1.0"

__all__ = ["Decoder", "DecoderConfig", "node_to_dict", "wrap_extensions"]
