import asyncio

import pytest

import main


@pytest.mark.integration
def test_index_reports_features_and_limits(make_client, test_settings):
    client, _, _ = make_client()
    r = client.get('/')
    assert r.status_code == 200
    j = r.json()
    assert j['status'] == 'ok'
    assert j['features']['aiConfigured'] is True
    assert j['features']['linkEnrichment'] is False
    assert j['features']['transcriptionBackends'] == ['openai-whisper']
    assert j['limits']['maxFlashcards'] == test_settings.MAX_FLASHCARDS
    assert j['limits']['maxFileSize'] == test_settings.MAX_FILE_SIZE


@pytest.mark.integration
def test_health(make_client):
    client, _, _ = make_client()
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json()['status'] == 'ok'


@pytest.mark.integration
def test_module_app_builds_without_provider_keys():
    assert main.app.state.settings.SERVICE_NAME


@pytest.mark.integration
def test_rate_limit_returns_429_envelope(make_client, test_settings):
    settings = test_settings.model_copy(update={'RATE_LIMIT_ENABLED': True, 'RATE_LIMIT_MAX': 2})
    client, _, _ = make_client(settings=settings)
    for _ in range(2):
        assert client.post('/generate-flashcards', json={'content': 'Cells.'}).status_code == 200
    r = client.post('/generate-flashcards', json={'content': 'Cells.'})
    assert r.status_code == 429
    j = r.json()
    assert j['retryAfter'] == settings.RATE_LIMIT_WINDOW_MINUTES * 60
    assert r.headers['Retry-After'] == str(settings.RATE_LIMIT_WINDOW_MINUTES * 60)
    # the info endpoint is not limited
    assert client.get('/').status_code == 200


@pytest.mark.integration
def test_cors_allows_localhost_origins(make_client):
    client, _, _ = make_client()
    r = client.options('/generate-flashcards', headers={'Origin': 'http://localhost:3000', 'Access-Control-Request-Method': 'POST'})
    assert r.status_code == 200
    assert r.headers['access-control-allow-origin'] == 'http://localhost:3000'


@pytest.mark.integration
def test_cors_allows_configured_origins(make_client, test_settings):
    settings = test_settings.model_copy(update={'CORS_ORIGINS': 'https://cards.example.com, https://admin.example.com'})
    client, _, _ = make_client(settings=settings)
    ok = client.get('/', headers={'Origin': 'https://admin.example.com'})
    assert ok.headers['access-control-allow-origin'] == 'https://admin.example.com'
    denied = client.get('/', headers={'Origin': 'https://evil.example.net'})
    assert 'access-control-allow-origin' not in denied.headers


@pytest.mark.integration
def test_pipeline_is_cancelled_when_client_disconnects():
    class GoneRequest:
        async def is_disconnected(self):
            return True

    started = {}

    async def slow_pipeline():
        started['yes'] = True
        await asyncio.sleep(10)

    async def scenario():
        task_holder = {}

        async def tracked():
            task_holder['task'] = asyncio.current_task()
            await slow_pipeline()

        with pytest.raises(main.ClientDisconnected):
            await main.run_until_disconnect(GoneRequest(), tracked(), poll_interval=0.01)
        return task_holder['task']

    task = asyncio.run(scenario())
    assert started['yes'] is True
    assert task.cancelled()
