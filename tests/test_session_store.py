"""
Session model merge rules and the two-tier session store
"""
from unittest.mock import patch

import pytest
from hypothesis import given, strategies as st
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from app.domain.session import Session, SessionData, deep_merge
from app.domain.session_store import RedisSessionCache, SessionStore, SqlSessionRepository, cache_key
from tests.conftest import CLASS_CODE, VALID_CPF

PHONE = "5571999990000"


class TestSessionData:

    @pytest.mark.unit
    def test_merge_keeps_absent_keys(self):
        data = SessionData.from_dict({"clienteData": {"cpf": VALID_CPF}, "tentativasTurma": 1})

        merged = data.merge({"tentativasTurma": 2})

        assert merged.cliente.cpf == VALID_CPF
        assert merged.tentativas_turma == 2

    @pytest.mark.unit
    def test_merge_replaces_sub_record(self):
        data = SessionData.from_dict({"clienteData": {"cpf": VALID_CPF, "email": "a@b.com"}})

        merged = data.merge({"clienteData": {"cpf": VALID_CPF}})

        assert merged.cliente.email is None

    @pytest.mark.unit
    def test_cliente_update_carries_whole_record(self):
        data = SessionData.from_dict({"clienteData": {"cpf": VALID_CPF, "turmaId": 10}})

        update = data.cliente_update(nomeCompleto="Maria Silva")

        assert update == {"clienteData": {"cpf": VALID_CPF, "turmaId": 10, "nomeCompleto": "Maria Silva"}}

    @pytest.mark.unit
    def test_unknown_keys_survive(self):
        data = SessionData.from_dict({"origem": "campanha", "pacoteData": {"albumSize": "30x30"}})

        raw = data.to_dict()

        assert raw["origem"] == "campanha"
        assert raw["pacoteData"]["albumSize"] == "30x30"

    @pytest.mark.unit
    def test_deep_merge_nested(self):
        base = {"clienteData": {"cpf": VALID_CPF, "email": "a@b.com"}, "tentativasTurma": 1}

        merged = deep_merge(base, {"clienteData": {"email": "c@d.com"}})

        assert merged == {"clienteData": {"cpf": VALID_CPF, "email": "c@d.com"}, "tentativasTurma": 1}
        assert base["clienteData"]["email"] == "a@b.com"

    @pytest.mark.unit
    @given(
        attempts=st.integers(min_value=0, max_value=10),
        name=st.text(min_size=1, max_size=20),
        write_cliente=st.booleans(),
        write_attempts=st.booleans(),
    )
    def test_keys_outside_partial_never_dropped(self, attempts, name, write_cliente, write_attempts):
        data = SessionData.from_dict({
            "clienteData": {"cpf": VALID_CPF, "nomeCompleto": name},
            "pacoteData": {"configuracaoTurmaId": 77},
            "tentativasTurma": attempts,
        })
        partial = {}
        if write_cliente:
            partial.update(data.cliente_update(email="maria@email.com"))
        if write_attempts:
            partial["tentativasTurma"] = attempts + 1

        merged = data.merge(partial)

        assert merged.cliente.cpf == VALID_CPF
        assert merged.cliente.nomeCompleto == name
        assert merged.pacote.configuracaoTurmaId == 77
        assert merged.tentativas_turma == (attempts + 1 if write_attempts else attempts)

    @pytest.mark.unit
    def test_session_cache_round_trip(self):
        session = Session(
            phone=PHONE,
            current_step="contract_name",
            data=SessionData.from_dict({"clienteData": {"cpf": VALID_CPF}, "tentativasTurma": 1}),
        )

        restored = Session.from_cache(session.to_cache())

        assert restored.current_step == "contract_name"
        assert restored.data.cliente.cpf == VALID_CPF
        assert restored.data.tentativas_turma == 1


class TestSessionStore:

    @pytest.mark.integration
    async def test_new_phone_gets_welcome_session(self, session_store: SessionStore, fake_redis):
        session = await session_store.get_or_create(PHONE)

        assert session.current_step == "welcome"
        assert session.data.to_dict()["clienteData"] == {}
        assert await session_store.peek_durable(PHONE) is not None
        assert fake_redis.ttl_of(cache_key(PHONE)) == 3600

    @pytest.mark.integration
    async def test_get_or_create_is_stable(self, session_store: SessionStore):
        await session_store.update(PHONE, "contract_cpf", "1", {"tentativasTurma": 0})
        await session_store.clear_cache(PHONE)

        session = await session_store.get_or_create(PHONE)

        assert session.current_step == "contract_cpf"

    @pytest.mark.integration
    async def test_update_preserves_earlier_fields(self, session_store: SessionStore):
        await session_store.get_or_create(PHONE)
        await session_store.update(PHONE, "contract_class_code", VALID_CPF, {"clienteData": {"cpf": VALID_CPF}})

        session = await session_store.update(PHONE, "contract_class_code", "X", {"tentativasTurma": 1})

        assert session.data.cliente.cpf == VALID_CPF
        assert session.data.tentativas_turma == 1
        durable = await session_store.peek_durable(PHONE)
        assert durable.data.cliente.cpf == VALID_CPF
        assert durable.last_message == "X"

    @pytest.mark.integration
    async def test_cache_mirrors_last_update(self, session_store: SessionStore):
        await session_store.update(PHONE, "contract_name", CLASS_CODE, {"clienteData": {"turmaId": 10}})

        cached = await session_store.peek_cache(PHONE)

        assert cached.current_step == "contract_name"
        assert cached.last_message == CLASS_CODE
        assert cached.data.cliente.turmaId == 10

    @pytest.mark.integration
    async def test_delete(self, session_store: SessionStore):
        await session_store.get_or_create(PHONE)

        assert await session_store.delete(PHONE) is True
        assert await session_store.peek_cache(PHONE) is None
        assert await session_store.peek_durable(PHONE) is None
        assert await session_store.delete(PHONE) is False

    @pytest.mark.integration
    async def test_corrupted_cache_entry_is_discarded(self, session_store: SessionStore, fake_redis):
        await session_store.update(PHONE, "contract_email", "Maria", {})
        await fake_redis.set(cache_key(PHONE), "{not json")

        session = await session_store.get_or_create(PHONE)

        assert session.current_step == "contract_email"

    @pytest.mark.integration
    async def test_redis_down_uses_database(self, session_factory):
        store = SessionStore(SqlSessionRepository(session_factory), RedisSessionCache())

        async def _broken():
            raise RedisConnectionError("down")

        with patch("app.domain.session_store.get_redis", _broken):
            await store.update(PHONE, "billing_cpf", "2", {})
            session = await store.get_or_create(PHONE)

        assert session.current_step == "billing_cpf"


class _BrokenRepository:
    """Durable tier that is always down"""

    async def load(self, phone):
        raise OperationalError("SELECT", {}, Exception("db down"))

    async def create(self, phone):
        raise OperationalError("INSERT", {}, Exception("db down"))

    async def save(self, phone, step, last_message, partial_data):
        raise OperationalError("UPDATE", {}, Exception("db down"))

    async def delete(self, phone):
        raise OperationalError("DELETE", {}, Exception("db down"))


class TestDurableOutage:

    @pytest.mark.unit
    async def test_ephemeral_session_when_database_down(self):
        store = SessionStore(_BrokenRepository(), RedisSessionCache())

        session = await store.get_or_create(PHONE)

        assert session.current_step == "welcome"

    @pytest.mark.unit
    async def test_cache_only_state_survives_turns(self):
        store = SessionStore(_BrokenRepository(), RedisSessionCache())
        await store.get_or_create(PHONE)
        await store.update(PHONE, "contract_class_code", VALID_CPF, {"clienteData": {"cpf": VALID_CPF}})

        session = await store.update(PHONE, "contract_class_code", "X", {"tentativasTurma": 1})

        assert session.data.cliente.cpf == VALID_CPF
        assert (await store.get_or_create(PHONE)).data.tentativas_turma == 1
