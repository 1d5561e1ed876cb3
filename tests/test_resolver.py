"""Tests for VariableResolver."""

from __future__ import annotations

import logging
from typing import Optional

import pytest
from pydantic import BaseModel

from syncstream_config.errors import CircularReferenceError, ReferenceDepthExceededError, TypeConversionError
from syncstream_config.resolver import VariableResolver
from syncstream_config.sections import SectionRegistry
from syncstream_config.store import ConfigurationStore
from syncstream_config.types import SerializerFormat


def make_resolver(data: dict, environ: dict[str, str] | None = None, **kwargs) -> VariableResolver:
    return VariableResolver(ConfigurationStore(data), environ=environ or {}, **kwargs)


class DatabaseSettings(BaseModel):
    Host: str
    Port: int
    Url: str


class AppInfo(BaseModel):
    name: str
    debug: bool = False


# === Key normalization ===


class TestNormalizeKey:
    def test_store_form(self, resolver: VariableResolver) -> None:
        assert resolver.normalize_key("a/b::c->d") == "a:b:c:d"

    def test_environment_form(self, resolver: VariableResolver) -> None:
        assert resolver.normalize_key("a/b::c->d", environment=True) == "a_b_c_d"

    def test_environment_form_replaces_colon_and_dot(self, resolver: VariableResolver) -> None:
        assert resolver.normalize_key("a:b.c", environment=True) == "a_b_c"

    def test_store_form_keeps_dots(self, resolver: VariableResolver) -> None:
        assert resolver.normalize_key("a.b:c") == "a.b:c"

    def test_result_is_trimmed(self, resolver: VariableResolver) -> None:
        assert resolver.normalize_key("  a/b  ") == "a:b"

    def test_references_in_key_resolved(self) -> None:
        resolver = make_resolver({"section": "Database", "Database": {"Host": "db"}})
        assert resolver.normalize_key("${section}/Host") == "Database:Host"
        assert resolver.get_value("${section}/Host") == "db"

    def test_reference_tokens_not_split_in_environment_form(self, resolver: VariableResolver) -> None:
        assert resolver.normalize_key("${env:HOST}.x", environment=True) == "localhost_x"

    def test_environment_variable_name(self, resolver: VariableResolver) -> None:
        assert resolver.environment_variable_name("database.user") == "SS_database_user"
        assert resolver.environment_variable_name("SS_HOST") == "SS_HOST"


# === Reference substitution ===


class TestSubstitution:
    @pytest.mark.parametrize("text", ["plain", "  padded  ", "", "$ {not} a ref", "{braces}"])
    def test_text_without_references_is_only_trimmed(self, resolver: VariableResolver, text: str) -> None:
        assert resolver.resolve_variable_references(text) == text.strip()
        assert resolver.resolve_environment_references(text) == text.strip()
        assert resolver.resolve(text) == text.strip()

    def test_store_reference(self, resolver: VariableResolver) -> None:
        assert resolver.resolve_variable_references("${GREETING}, world") == "hello, world"

    def test_repeated_reference_is_not_circular(self, resolver: VariableResolver) -> None:
        assert resolver.resolve("${GREETING} ${GREETING}") == "hello hello"

    def test_environment_reference(self, resolver: VariableResolver) -> None:
        assert resolver.resolve_environment_references("http://${env:HOST}") == "http://localhost"

    def test_environment_pass_leaves_store_references(self, resolver: VariableResolver) -> None:
        assert resolver.resolve_environment_references("${env:HOST}-${GREETING}") == "localhost-${GREETING}"

    def test_env_marker_case_insensitive(self, resolver: VariableResolver) -> None:
        assert resolver.resolve("${ENV:HOST}") == "localhost"

    def test_prefix_not_added_twice(self, resolver: VariableResolver) -> None:
        assert resolver.resolve("${env:SS_HOST}") == "localhost"

    def test_environment_name_normalized(self, resolver: VariableResolver) -> None:
        assert resolver.resolve("${env:DATABASE/USER}") == "admin"

    def test_environment_reference_consumed_before_store_reference(self) -> None:
        resolver = make_resolver({"X": "from-store"}, {"SS_X": "from-env"})
        assert resolver.resolve("${env:X}|${X}") == "from-env|from-store"

    def test_missing_references_become_empty(self, resolver: VariableResolver) -> None:
        assert resolver.resolve("a${MISSING}b${env:MISSING}c") == "abc"

    def test_missing_reference_logged(self, resolver: VariableResolver, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="syncstream_config.resolver"):
            resolver.resolve("${MISSING}")
        assert "is not set" in caplog.text

    def test_environment_value_resolved_recursively(self) -> None:
        resolver = make_resolver({"GREETING": "hello"}, {"SS_CHAIN": "${GREETING}!"})
        assert resolver.resolve("${env:CHAIN}") == "hello!"

    def test_resolved_strings_are_idempotent(self, resolver: VariableResolver) -> None:
        once = resolver.resolve("${GREETING}, ${env:HOST}")
        assert resolver.resolve(once) == once

    def test_nested_store_reference(self) -> None:
        resolver = make_resolver({"which": "GREETING", "GREETING": "hello"})
        assert resolver.resolve("${${which}}") == "hello"

    def test_nested_environment_reference(self) -> None:
        resolver = make_resolver({"name": "HOST"}, {"SS_HOST": "localhost"})
        assert resolver.resolve("${env:${name}}") == "localhost"
        assert resolver.resolve_environment_references("${env:${name}}") == "localhost"

    def test_reference_inside_key_of_stored_value(self) -> None:
        resolver = make_resolver({"section": "Database", "Database": {"Host": "db"}, "url": "${${section}:Host}"})
        assert resolver.get_value("url") == "db"

    def test_nested_references_with_surrounding_text(self) -> None:
        resolver = make_resolver(
            {"section": "Database", "Database": {"Host": "db", "Port": "5432"}},
            {"SS_PORT_KEY": "Port"},
        )
        text = "pg://${${section}/Host}:${${section}::${env:PORT_KEY}}/app"
        assert resolver.resolve(text) == "pg://db:5432/app"

    def test_environment_pass_keeps_nested_store_token(self) -> None:
        resolver = make_resolver({"section": "Database"}, {"SS_HOST": "localhost"})
        assert resolver.resolve_environment_references("${${section}:Host}") == "${${section}:Host}"

    def test_unterminated_reference_is_literal(self, resolver: VariableResolver) -> None:
        assert resolver.resolve("${GREETING") == "${GREETING"
        assert resolver.resolve("${open ${GREETING}") == "${open hello"

    def test_nested_cycle_detected(self) -> None:
        resolver = make_resolver({"A": "${${B}}", "B": "A"})
        with pytest.raises(CircularReferenceError):
            resolver.get_value("A")

    def test_prefix_is_settable(self) -> None:
        resolver = make_resolver({}, {"APP_HOST": "app", "SS_HOST": "ss"})
        resolver.environment_prefix = "APP_"
        assert resolver.environment_prefix == "APP_"
        assert resolver.resolve("${env:HOST}") == "app"


# === get_value ===


class TestGetValue:
    def test_plain_value(self, resolver: VariableResolver) -> None:
        assert resolver.get_value("GREETING") == "hello"

    def test_chained_environment_reference(self, resolver: VariableResolver) -> None:
        assert resolver.get_value("URL") == "http://localhost"

    def test_chained_store_references(self, resolver: VariableResolver) -> None:
        assert resolver.get_value("Database:Url") == "postgres://db.internal:5432"

    def test_separators_and_case(self, resolver: VariableResolver) -> None:
        assert resolver.get_value("database/host") == "db.internal"
        assert resolver.get_value("Database->Port") == "5432"
        assert resolver.get_value("Servers::1") == "beta"

    def test_missing_key(self, resolver: VariableResolver) -> None:
        assert resolver.get_value("missing") is None

    def test_value_without_reference_returned_verbatim(self) -> None:
        resolver = make_resolver({"padded": "  x  ", "ref": "  ${padded}-y  "})
        assert resolver.get_value("padded") == "  x  "
        assert resolver.get_value("ref") == "x  -y"

    def test_get_environment_value(self, resolver: VariableResolver) -> None:
        assert resolver.get_environment_value("HOST") == "localhost"
        assert resolver.get_environment_value("NOPE") is None

    def test_resolvers_are_isolated(self) -> None:
        first = make_resolver({"k": "one"}, {"SS_E": "a"})
        second = make_resolver({"k": "two"}, {"T_E": "b"}, environment_prefix="T_")
        assert (first.get_value("k"), first.resolve("${env:E}")) == ("one", "a")
        assert (second.get_value("k"), second.resolve("${env:E}")) == ("two", "b")


# === Cycle and depth guards ===


class TestCircularReferences:
    def test_self_reference(self) -> None:
        resolver = make_resolver({"A": "${A}"})
        with pytest.raises(CircularReferenceError) as exc_info:
            resolver.get_value("A")
        assert exc_info.value.reference_chain == ["a", "a"]

    def test_mutual_reference(self) -> None:
        resolver = make_resolver({"A": "x${B}", "B": "y${A}"})
        with pytest.raises(CircularReferenceError) as exc_info:
            resolver.get_value("A")
        assert exc_info.value.reference_chain == ["a", "b", "a"]

    def test_environment_self_reference(self) -> None:
        resolver = make_resolver({}, {"SS_LOOP": "${env:LOOP}"})
        with pytest.raises(CircularReferenceError) as exc_info:
            resolver.resolve("${env:LOOP}")
        assert exc_info.value.reference_chain == ["env:SS_LOOP", "env:SS_LOOP"]

    def test_cycle_through_environment(self) -> None:
        resolver = make_resolver({"A": "${env:A}"}, {"SS_A": "${A}"})
        with pytest.raises(CircularReferenceError) as exc_info:
            resolver.get_value("A")
        assert exc_info.value.reference_chain == ["a", "env:SS_A", "a"]

    def test_diamond_is_not_circular(self) -> None:
        resolver = make_resolver({"top": "${left}/${right}", "left": "${base}", "right": "${base}", "base": "b"})
        assert resolver.get_value("top") == "b/b"

    def test_depth_limit(self) -> None:
        data = {"A": "${B}", "B": "${C}", "C": "${D}", "D": "end"}
        with pytest.raises(ReferenceDepthExceededError) as exc_info:
            make_resolver(data, max_depth=2).get_value("A")
        assert exc_info.value.max_depth == 2
        assert make_resolver(data, max_depth=3).get_value("A") == "end"

    def test_invalid_max_depth(self) -> None:
        with pytest.raises(ValueError):
            make_resolver({}, max_depth=0)


# === Sections ===


class TestGetSection:
    def test_section_leaves_resolved(self, resolver: VariableResolver) -> None:
        assert resolver.get_section("Database") == {
            "Host": "db.internal",
            "Port": "5432",
            "Url": "postgres://db.internal:5432",
        }

    def test_list_section(self, resolver: VariableResolver) -> None:
        assert resolver.get_section("Servers") == ["alpha", "beta"]

    def test_missing_section(self, resolver: VariableResolver) -> None:
        assert resolver.get_section("Nope") is None

    def test_circular_leaf(self) -> None:
        resolver = make_resolver({"S": {"a": "${S:a}"}})
        with pytest.raises(CircularReferenceError):
            resolver.get_section("S")


# === Typed access ===


class TestTypedAccess:
    def test_typed_value_primitive(self, resolver: VariableResolver) -> None:
        assert resolver.get_typed_value("42", int) == 42

    def test_typed_value_failure(self, resolver: VariableResolver) -> None:
        with pytest.raises(TypeConversionError):
            resolver.get_typed_value("forty-two", int)

    def test_get_typed_leaf(self, resolver: VariableResolver) -> None:
        assert resolver.get_typed("Database:Port", int) == 5432

    def test_get_typed_with_format(self, resolver: VariableResolver) -> None:
        assert resolver.get_typed("Servers:0", str, SerializerFormat.YAML) == "alpha"

    def test_get_typed_list_section(self, resolver: VariableResolver) -> None:
        assert resolver.get_typed("Servers", list[str]) == ["alpha", "beta"]

    def test_get_typed_model_section(self, resolver: VariableResolver) -> None:
        settings = resolver.get_typed("Database", DatabaseSettings)
        assert settings == DatabaseSettings(Host="db.internal", Port=5432, Url="postgres://db.internal:5432")

    def test_get_typed_structured_leaf(self) -> None:
        resolver = make_resolver({"ports": "[80, 443]"})
        assert resolver.get_typed("ports", list[int]) == [80, 443]

    def test_section_wins_over_default(self, resolver: VariableResolver) -> None:
        assert resolver.get_typed("servers", list[str], default=[]) == ["alpha", "beta"]

    def test_missing_with_default(self, resolver: VariableResolver) -> None:
        assert resolver.get_typed("missing", int, default=7) == 7

    def test_missing_optional(self, resolver: VariableResolver) -> None:
        assert resolver.get_typed("missing", Optional[int]) is None

    def test_missing_without_default(self, resolver: VariableResolver) -> None:
        with pytest.raises(TypeConversionError):
            resolver.get_typed("missing", int)

    def test_section_does_not_fit_type(self, resolver: VariableResolver) -> None:
        with pytest.raises(TypeConversionError):
            resolver.get_typed("Database", int)

    def test_environment_typed(self, resolver: VariableResolver) -> None:
        assert resolver.get_environment_typed("PORT", int) == 8080
        assert resolver.get_environment_typed("NOPE", int, default=1) == 1


class TestSectionValue:
    def test_registered_section_name(self, resolver: VariableResolver, sections: SectionRegistry) -> None:
        sections.register(DatabaseSettings, "Database")
        assert resolver.get_section_value(DatabaseSettings).Port == 5432

    def test_falls_back_to_type_name(self) -> None:
        resolver = make_resolver({"AppInfo": {"name": "demo", "debug": "yes"}})
        assert resolver.get_section_value(AppInfo) == AppInfo(name="demo", debug=True)

    def test_missing_section_default(self) -> None:
        assert make_resolver({}).get_section_value(AppInfo, default=None) is None
