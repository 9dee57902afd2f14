"""
Tests for the META-INF managed directory and its RelaxNG validation.
"""

import pytest

from conftest import VALID_CONTAINER_XML, VALID_MANIFEST_XML
from ucf_container import Container, MalformedContainerError
from ucf_meta_inf import (
    MetaInf,
    RelaxNGValidator,
    CONTAINER_SCHEMA,
    MANIFEST_SCHEMA,
    META_INF_DIR,
)

pytest.importorskip("lxml")

INVALID_CONTAINER_XML = b"""<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles/>
</container>
"""


class TestRelaxNGValidator:
    def test_valid_container_document(self):
        validator = RelaxNGValidator(CONTAINER_SCHEMA)
        assert validator(VALID_CONTAINER_XML)
        assert validator.errors(VALID_CONTAINER_XML) == []

    def test_invalid_container_document(self):
        validator = RelaxNGValidator(CONTAINER_SCHEMA)
        assert not validator(INVALID_CONTAINER_XML)
        assert validator.errors(INVALID_CONTAINER_XML)

    def test_wrong_namespace(self):
        document = VALID_CONTAINER_XML.replace(b"xmlns:container\"", b"xmlns:other\"")
        assert document != VALID_CONTAINER_XML
        assert not RelaxNGValidator(CONTAINER_SCHEMA)(document)

    @pytest.mark.parametrize("document", [b"", b"<?xml version=\"1.0\"?>", b"<container", b"not xml at all"])
    def test_malformed_documents_fail(self, document):
        validator = RelaxNGValidator(CONTAINER_SCHEMA)
        assert not validator(document)
        assert validator.errors(document)[0].startswith("Not well-formed XML")

    def test_manifest_document(self):
        validator = RelaxNGValidator(MANIFEST_SCHEMA)
        assert validator(VALID_MANIFEST_XML)
        assert not validator(VALID_MANIFEST_XML.replace(b' manifest:media-type="text/plain"', b""))


class TestMetaInf:
    def test_shape(self):
        meta_inf = MetaInf()
        assert meta_inf.name == META_INF_DIR
        assert meta_inf.required is False
        assert [f.name for f in meta_inf.managed_files()] == [
            "container.xml",
            "manifest.xml",
            "metadata.xml",
            "signatures.xml",
            "encryption.xml",
            "rights.xml",
        ]
        assert all(not f.required for f in meta_inf.managed_files())

    def test_valid_meta_inf_verifies(self, new_ucf_path):
        with Container.create(new_ucf_path) as ucf:
            ucf.managed_entry("META-INF/container.xml").write(VALID_CONTAINER_XML)
            ucf.managed_entry("META-INF/manifest.xml").write(VALID_MANIFEST_XML)
            ucf.managed_entry("META-INF/rights.xml").write(b"anything goes here")
            ucf.verify_or_fail()

        Container.verify_file_or_fail(new_ucf_path)

    def test_invalid_container_xml_fails(self, new_ucf_path):
        with Container.create(new_ucf_path) as ucf:
            ucf.managed_entry("META-INF/container.xml").write(INVALID_CONTAINER_XML)

        assert not Container.verify_file(new_ucf_path)
        with pytest.raises(MalformedContainerError, match="container.xml"):
            Container.verify_file_or_fail(new_ucf_path)

    def test_schema_validation_can_be_disabled(self, new_ucf_path):
        with Container.create(new_ucf_path) as ucf:
            ucf.managed_entry("META-INF/manifest.xml").write(b"<?xml version=\"1.0\"?>")

        assert not Container.verify_file(new_ucf_path)
        assert Container.verify_file(new_ucf_path, validate_schemas=False)

    def test_meta_inf_is_protected_in_any_case(self, new_ucf_path):
        with Container.create(new_ucf_path) as ucf:
            for name in ["META-INF", "meta-inf/", "Meta-Inf/Container.XML", "META-INF/encryption.xml"]:
                assert ucf.is_protected(name), name
            assert not ucf.is_protected("META-INF/other.xml")
