import asyncio

import pytest

from lifegrass.client.api import ApiError, ApiUnavailable
from lifegrass.client.auth_flow import AuthenticationFailed, AuthFlowController, RegistrationForm
from lifegrass.client.cache import MemoryStorage
from lifegrass.client.session import AuthState, MissingUsername, Session
from lifegrass.schemas import JournalEntry, UserState


class ScriptedPrompt:
    """Answers prompts from fixed lists and records the error shown each time."""

    def __init__(self, registrations=(), passwords=()):
        self.registrations = list(registrations)
        self.passwords = list(passwords)
        self.shown = []

    async def ask_registration(self, username, error):
        self.shown.append(("register", error))
        return self.registrations.pop(0)

    async def ask_password(self, username, error):
        self.shown.append(("login", error))
        return self.passwords.pop(0)


class StubApi:
    """Scripted stand-in for LifeGrassClient; each attribute is a list of outcomes."""

    def __init__(self, exists=(), fetch=(), login=(), register=()):
        self.exists = list(exists)
        self.fetch = list(fetch)
        self.logins = list(login)
        self.registers = list(register)

    @staticmethod
    def _next(outcomes):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def check_exists(self, username):
        return self._next(self.exists)

    async def fetch_state(self, username, token):
        return self._next(self.fetch)

    async def login(self, username, password):
        return self._next(self.logins)

    async def register(self, username, password, birth_year=None):
        return self._next(self.registers)


def stale_cache(session):
    session.cache.set_birth_year(1980)
    session.cache.put_entry("2001-1", JournalEntry(text="someone else's"))


# ---------- page path ----------
def test_session_needs_a_username():
    for path in ("/", "", "/a/b", "/bad name"):
        with pytest.raises(MissingUsername):
            Session.open(path, api=None, storage=MemoryStorage())
    assert Session.open("/Alice/", api=None, storage=MemoryStorage()).username == "alice"


# ---------- against the real app ----------
def test_new_user_registers_and_stale_cache_is_cleared(run_with_api):
    storage = MemoryStorage()
    prompt = ScriptedPrompt(registrations=[RegistrationForm("pass1234", "pass1234", 1995)])

    async def scenario(api):
        session = Session.open("/alice", api, storage)
        stale_cache(session)
        state = await AuthFlowController(session, prompt).run()
        assert state is AuthState.AUTHENTICATED
        assert session.state is AuthState.AUTHENTICATED
        assert session.cache.token() == session.token
        assert session.cache.birth_year() == 1995
        assert session.cache.journal() == {}
        assert await api.check_exists("alice")
        return session.token

    assert run_with_api(scenario)
    assert prompt.shown == [("register", None)]


def test_registration_reprompts_on_bad_form(run_with_api):
    prompt = ScriptedPrompt(registrations=[
        RegistrationForm("pass1234", "pass12345"),
        RegistrationForm("abc", "abc"),
        RegistrationForm("pass1234", "pass1234", 1800),
        RegistrationForm("pass1234", "pass1234"),
    ])

    async def scenario(api):
        session = Session.open("/alice", api, MemoryStorage())
        return await AuthFlowController(session, prompt).run()

    assert run_with_api(scenario) is AuthState.AUTHENTICATED
    assert [error for _, error in prompt.shown] == [
        None,
        "Passwords do not match",
        "Password must be at least 4 characters",
        "Birth year must be between 1920 and 2020",
    ]


def test_existing_user_with_valid_token_skips_prompts(run_with_api):
    storage = MemoryStorage()
    prompt = ScriptedPrompt()

    async def scenario(api):
        token = await api.register("alice", "pass1234")
        session = Session.open("/alice", api, storage)
        session.cache.save_token(token)
        state = await AuthFlowController(session, prompt).run()
        return state, session.token == token

    assert run_with_api(scenario) == (AuthState.AUTHENTICATED, True)
    assert prompt.shown == []


def test_rejected_token_falls_back_to_login(run_with_api):
    storage = MemoryStorage()
    prompt = ScriptedPrompt(passwords=["wrong-pass", "pass1234"])

    async def scenario(api):
        await api.register("alice", "pass1234")
        session = Session.open("/alice", api, storage)
        session.cache.save_token("expired-or-forged")
        session.cache.set_birth_year(1995)
        state = await AuthFlowController(session, prompt).run()
        return state, session

    state, session = run_with_api(scenario)
    assert state is AuthState.AUTHENTICATED
    assert session.token and session.token != "expired-or-forged"
    assert session.cache.token() == session.token
    # only the token was dropped, the cached document stays
    assert session.cache.birth_year() == 1995
    assert prompt.shown == [("login", None), ("login", "Invalid password")]


# ---------- scripted server ----------
def run_flow(api, prompt, *, token=None, max_attempts=5):
    session = Session.open("/alice", api, MemoryStorage())
    stale_cache(session)
    if token:
        session.cache.save_token(token)
    controller = AuthFlowController(session, prompt, max_attempts=max_attempts)
    return asyncio.run(controller.run()), session


def test_existence_check_failure_goes_to_registration():
    api = StubApi(exists=[ApiUnavailable("offline")], register=["new-token"])
    prompt = ScriptedPrompt(registrations=[RegistrationForm("pass1234", "pass1234")])
    state, session = run_flow(api, prompt, token="old-token")
    assert state is AuthState.AUTHENTICATED
    assert session.token == "new-token"
    assert session.cache.journal() == {}


def test_account_removed_after_existence_check():
    api = StubApi(
        exists=[True, False],
        fetch=[ApiError(404, "User not found")],
        login=[ApiError(401, "Invalid password")],
        register=["fresh-token"],
    )
    prompt = ScriptedPrompt(passwords=["pass1234"], registrations=[RegistrationForm("pass1234", "pass1234")])
    state, session = run_flow(api, prompt, token="live-token")
    assert state is AuthState.AUTHENTICATED
    assert session.token == "fresh-token"
    assert session.cache.journal() == {}
    assert prompt.shown == [("login", None), ("register", None)]


def test_other_token_errors_only_drop_the_token():
    api = StubApi(exists=[True], fetch=[ApiError(500, "Server error")], login=["t2"])
    prompt = ScriptedPrompt(passwords=["pass1234"])
    state, session = run_flow(api, prompt, token="t1")
    assert state is AuthState.AUTHENTICATED
    assert session.token == "t2"
    assert "2001-1" in session.cache.journal()


def test_name_taken_during_registration_switches_to_login():
    api = StubApi(exists=[False], register=[ApiError(409, "Username already taken")], login=["t"])
    prompt = ScriptedPrompt(registrations=[RegistrationForm("pass1234", "pass1234")], passwords=["pass1234"])
    state, session = run_flow(api, prompt)
    assert state is AuthState.AUTHENTICATED
    assert [kind for kind, _ in prompt.shown] == ["register", "login"]


def test_server_down_during_login_reprompts():
    api = StubApi(exists=[True], login=[ApiUnavailable("offline"), "t"])
    prompt = ScriptedPrompt(passwords=["pass1234", "pass1234"])
    state, _ = run_flow(api, prompt)
    assert state is AuthState.AUTHENTICATED
    assert prompt.shown[1] == ("login", "Server unavailable, please try again")


def test_empty_password_reprompts_without_calling_server():
    api = StubApi(exists=[True], login=["t"])
    prompt = ScriptedPrompt(passwords=["", "pass1234"])
    state, _ = run_flow(api, prompt)
    assert state is AuthState.AUTHENTICATED
    assert prompt.shown[1] == ("login", "Password required")


def test_gives_up_after_max_attempts():
    api = StubApi(exists=[True] * 4, login=[ApiError(401, "Invalid password")] * 3)
    prompt = ScriptedPrompt(passwords=["a1", "a2", "a3"])
    with pytest.raises(AuthenticationFailed):
        run_flow(api, prompt, max_attempts=3)


# ---------- password re-check ----------
def test_confirm_password_against_the_real_app(run_with_api):
    async def scenario(api):
        token = await api.register("alice", "pass1234")
        session = Session.open("/alice", api, MemoryStorage())
        session.adopt_token(token)
        controller = AuthFlowController(session, ScriptedPrompt())
        wrong = await controller.confirm_password("not-it")
        right = await controller.confirm_password("pass1234")
        return wrong, right, session

    wrong, right, session = run_with_api(scenario)
    assert (wrong, right) == (False, True)
    assert session.token and session.cache.token() == session.token


def test_confirm_password_outcomes():
    api = StubApi(login=["t2", ApiError(401, "Invalid password"), ApiUnavailable("offline")])
    session = Session.open("/alice", api, MemoryStorage())
    session.adopt_token("t1")
    controller = AuthFlowController(session, ScriptedPrompt())

    async def scenario():
        return [
            await controller.confirm_password(""),
            await controller.confirm_password("pass1234"),
            await controller.confirm_password("wrong"),
            await controller.confirm_password("pass1234"),
        ]

    assert asyncio.run(scenario()) == [False, True, False, False]
    # failures never discard the token from the last good check
    assert session.token == "t2"
    assert api.logins == []
