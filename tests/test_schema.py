from api_explorer.parser.schema import (
    ArraySchema,
    EnumSchema,
    ObjectSchema,
    PrimitiveSchema,
    RefSchema,
    is_binary,
    is_binary_array,
    parse_schema,
    schema_type_name,
)


class TestParseSchemaPrecedence:
    def test_ref_wins_over_everything(self):
        node = parse_schema({"$ref": "#/components/schemas/Pet", "type": "object", "enum": ["a"]})
        assert isinstance(node, RefSchema)
        assert node.ref_name == "Pet"

    def test_enum_before_array(self):
        node = parse_schema({"type": "array", "enum": [["a"], ["b"]]})
        assert isinstance(node, EnumSchema)
        assert node.values == [["a"], ["b"]]

    def test_empty_enum_is_ignored(self):
        node = parse_schema({"type": "string", "enum": []})
        assert isinstance(node, PrimitiveSchema)

    def test_array_before_object(self):
        node = parse_schema({"type": "array", "properties": {"x": {}}, "items": {"type": "string"}})
        assert isinstance(node, ArraySchema)
        assert isinstance(node.items, PrimitiveSchema)

    def test_object_by_properties_without_type(self):
        node = parse_schema({"properties": {"name": {"type": "string"}}, "required": ["name"]})
        assert isinstance(node, ObjectSchema)
        assert node.is_required("name")
        assert not node.is_required("age")

    def test_primitive_fallback(self):
        node = parse_schema({"type": "integer", "format": "int64", "minimum": 1})
        assert isinstance(node, PrimitiveSchema)
        assert node.type == "integer"
        assert node.format == "int64"
        assert node.minimum == 1

    def test_non_dict_becomes_untyped_primitive(self):
        node = parse_schema(None)
        assert isinstance(node, PrimitiveSchema)
        assert node.type is None


class TestSchemaFields:
    def test_example_and_default_presence(self):
        node = parse_schema({"type": "string", "example": None, "default": "x"})
        assert node.has_example is True
        assert node.example is None
        assert node.has_default is True
        assert node.default == "x"

    def test_examples_list_used_as_example(self):
        node = parse_schema({"type": "string", "examples": ["first", "second"]})
        assert node.example == "first"

    def test_type_list_with_null(self):
        node = parse_schema({"type": ["string", "null"]})
        assert isinstance(node, PrimitiveSchema)
        assert node.type == "string"
        assert node.nullable is True

    def test_camel_case_constraints(self):
        node = parse_schema({
            "type": "string", "minLength": 2, "maxLength": 5, "readOnly": True, "pattern": "^a",
        })
        assert node.min_length == 2
        assert node.max_length == 5
        assert node.read_only is True
        assert node.pattern == "^a"

    def test_nested_properties_parsed(self):
        node = parse_schema({
            "type": "object",
            "properties": {"tags": {"type": "array", "items": {"$ref": "#/components/schemas/Tag"}}},
        })
        tags = node.properties["tags"]
        assert isinstance(tags, ArraySchema)
        assert isinstance(tags.items, RefSchema)


class TestHelpers:
    def test_binary_detection(self):
        single = parse_schema({"type": "string", "format": "binary"})
        many = parse_schema({"type": "array", "items": {"type": "string", "format": "binary"}})
        assert is_binary(single)
        assert not is_binary_array(single)
        assert is_binary_array(many)
        assert not is_binary(many)

    def test_type_names(self):
        assert schema_type_name(parse_schema({"$ref": "#/components/schemas/Pet"})) == "Pet"
        assert schema_type_name(parse_schema({"type": "array"})) == "array"
        assert schema_type_name(parse_schema({"enum": [1, 2]})) == "enum"
        assert schema_type_name(parse_schema({})) == "any"
