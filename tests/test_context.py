from dataclasses import replace

from ethereum_exporter.context import create_context, registration_retry_delay_seconds
from ethereum_exporter.registration import ConsulRegistrar, RegistrationLoop
from ethereum_exporter.settings import RegistrationSettings, get_settings


def test_create_context_wires_registration(exporter_config) -> None:
    context = create_context(exporter_config)

    try:
        assert isinstance(context.registration, RegistrationLoop)
        assert isinstance(context.registration.registrar, ConsulRegistrar)
        assert context.registration.max_attempts == 5
        assert context.registration.retry_delay == 60.0
        assert context.sink.registry is context.registry
        assert context.sink.prefix == "parity_test"
        assert context.engine.interval_seconds == 1
    finally:
        context.close()


def test_create_context_without_registration(exporter_config) -> None:
    context = create_context(replace(exporter_config, registration_enabled=False))

    try:
        assert context.registration is None
    finally:
        context.close()


def test_registration_retry_delay_from_settings() -> None:
    settings = replace(
        get_settings(),
        registration=RegistrationSettings(max_attempts=3, retry_delay="30s", consul_token=None),
    )

    assert registration_retry_delay_seconds(settings) == 30.0


def test_registration_retry_delay_falls_back_on_bad_value() -> None:
    settings = replace(
        get_settings(),
        registration=RegistrationSettings(max_attempts=3, retry_delay="later", consul_token=None),
    )

    assert registration_retry_delay_seconds(settings) == 60.0
