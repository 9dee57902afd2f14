# -*- coding: utf-8 -*-
"""
ucf_meta_inf.py

The standard META-INF directory of a UCF document.

META-INF is optional, as is every file in it. When present, container.xml
and manifest.xml are validated against RelaxNG schemas (the OCF container
schema and the OpenDocument 1.0 manifest schema) using lxml. Both schemas
are embedded below.

Requires:
    - lxml library (`pip install lxml`) for schema validation. Without it
      META-INF contents are not validated.
"""

import functools
from typing import Optional, List

from ucf_entries import ManagedDirectory, ManagedFile, FeatureNotAvailableError

# --- XML Requirements ---
try:
    from lxml import etree

    LXML_AVAILABLE = True
except ImportError:
    LXML_AVAILABLE = False
    print("Warning: 'lxml' library not found. META-INF schema validation will be disabled.")
    print("Install it using: pip install lxml")

# --- Constants ---
META_INF_DIR = "META-INF"

CONTAINER_FILE = "container.xml"
MANIFEST_FILE = "manifest.xml"
METADATA_FILE = "metadata.xml"
SIGNATURES_FILE = "signatures.xml"
ENCRYPTION_FILE = "encryption.xml"
RIGHTS_FILE = "rights.xml"

CONTAINER_NAMESPACE = "urn:oasis:names:tc:opendocument:xmlns:container"
MANIFEST_NAMESPACE = "urn:oasis:names:tc:opendocument:xmlns:manifest:1.0"

CONTAINER_SCHEMA = f"""\
<grammar xmlns="http://relaxng.org/ns/structure/1.0"
         ns="{CONTAINER_NAMESPACE}"
         datatypeLibrary="http://www.w3.org/2001/XMLSchema-datatypes">
  <start>
    <element name="container">
      <attribute name="version"><value>1.0</value></attribute>
      <element name="rootfiles">
        <oneOrMore>
          <element name="rootfile">
            <attribute name="full-path"><data type="anyURI"/></attribute>
            <attribute name="media-type"><data type="string"/></attribute>
          </element>
        </oneOrMore>
      </element>
      <optional>
        <element name="links">
          <oneOrMore>
            <element name="link">
              <attribute name="href"><data type="anyURI"/></attribute>
              <attribute name="rel"><data type="string"/></attribute>
              <optional>
                <attribute name="media-type"><data type="string"/></attribute>
              </optional>
            </element>
          </oneOrMore>
        </element>
      </optional>
    </element>
  </start>
</grammar>
"""

MANIFEST_SCHEMA = f"""\
<grammar xmlns="http://relaxng.org/ns/structure/1.0"
         xmlns:manifest="{MANIFEST_NAMESPACE}"
         datatypeLibrary="http://www.w3.org/2001/XMLSchema-datatypes">
  <start>
    <element name="manifest:manifest">
      <oneOrMore>
        <ref name="file-entry"/>
      </oneOrMore>
    </element>
  </start>
  <define name="file-entry">
    <element name="manifest:file-entry">
      <attribute name="manifest:full-path"><data type="string"/></attribute>
      <attribute name="manifest:media-type"><data type="string"/></attribute>
      <optional>
        <attribute name="manifest:size"><data type="nonNegativeInteger"/></attribute>
      </optional>
      <optional>
        <ref name="encryption-data"/>
      </optional>
    </element>
  </define>
  <define name="encryption-data">
    <element name="manifest:encryption-data">
      <attribute name="manifest:checksum-type"><data type="string"/></attribute>
      <attribute name="manifest:checksum"><data type="base64Binary"/></attribute>
      <element name="manifest:algorithm">
        <attribute name="manifest:algorithm-name"><data type="string"/></attribute>
        <attribute name="manifest:initialisation-vector"><data type="base64Binary"/></attribute>
      </element>
      <element name="manifest:key-derivation">
        <attribute name="manifest:key-derivation-name"><data type="string"/></attribute>
        <attribute name="manifest:salt"><data type="base64Binary"/></attribute>
        <attribute name="manifest:iteration-count"><data type="nonNegativeInteger"/></attribute>
        <optional>
          <attribute name="manifest:key-size"><data type="nonNegativeInteger"/></attribute>
        </optional>
      </element>
    </element>
  </define>
</grammar>
"""


# --- Helper Functions ---
def _make_xml_parser() -> "etree.XMLParser":
    """Strict parser without DTDs, entity expansion or network access."""
    return etree.XMLParser(
        resolve_entities=False,
        load_dtd=False,
        dtd_validation=False,
        no_network=True,
        recover=False,
        huge_tree=False,
    )


@functools.lru_cache(maxsize=None)
def _compile_schema(schema: str) -> "etree.RelaxNG":
    """Parses and compiles a RelaxNG schema. Compiled schemas are shared."""
    return etree.RelaxNG(etree.fromstring(schema, parser=_make_xml_parser()))


class RelaxNGValidator:
    """
    Validates XML documents against a RelaxNG schema.

    Instances are callable and return True for valid documents, so they can
    be passed straight to ManagedFile as a validator.
    """

    def __init__(self, schema: str):
        if not LXML_AVAILABLE:
            raise FeatureNotAvailableError("The lxml library is required for RelaxNG schema validation.")
        self._schema = _compile_schema(schema)

    def errors(self, contents: bytes) -> List[str]:
        """Returns a list of problems with `contents`; empty if it is valid."""
        try:
            document = etree.fromstring(contents, parser=_make_xml_parser())
        except (etree.XMLSyntaxError, ValueError) as e:
            return [f"Not well-formed XML: {e}"]
        if self._schema.validate(document):
            return []
        return [str(error) for error in self._schema.error_log]

    def __call__(self, contents: bytes) -> bool:
        return self.errors(contents) == []


def schema_validator(schema: str) -> Optional[RelaxNGValidator]:
    """Returns a validator for `schema`, or None if validation is unavailable."""
    return RelaxNGValidator(schema) if LXML_AVAILABLE else None


class MetaInf(ManagedDirectory):
    """
    The standard META-INF managed directory.

    Set `validate_schemas` to False to skip the schema checks of
    container.xml and manifest.xml.
    """

    def __init__(self, validate_schemas: bool = True):
        container_validator = schema_validator(CONTAINER_SCHEMA) if validate_schemas else None
        manifest_validator = schema_validator(MANIFEST_SCHEMA) if validate_schemas else None
        super().__init__(
            META_INF_DIR,
            required=False,
            entries=[
                ManagedFile(CONTAINER_FILE, validator=container_validator),
                ManagedFile(MANIFEST_FILE, validator=manifest_validator),
                ManagedFile(METADATA_FILE),
                ManagedFile(SIGNATURES_FILE),
                ManagedFile(ENCRYPTION_FILE),
                ManagedFile(RIGHTS_FILE),
            ],
        )
