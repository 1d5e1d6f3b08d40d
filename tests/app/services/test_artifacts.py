"""Tests for app.services.artifacts — local and R2 deliverable stores."""
import json
import os

import pytest
from unittest.mock import MagicMock, patch

from app.services.artifacts import LocalArtifactStore, R2ArtifactStore, get_artifact_store
from app.services.circuit_breaker import CircuitBreaker, CircuitOpenError


class TestLocalArtifactStore:

    def test_writes_json_under_key(self, tmp_path):
        store = LocalArtifactStore(str(tmp_path))
        path = store.put_json('assessments/a1/executive_summary-abc.json', {'tier': 'executive_summary'})
        assert path == os.path.join(str(tmp_path), 'assessments', 'a1', 'executive_summary-abc.json')
        with open(path) as f:
            assert json.load(f) == {'tier': 'executive_summary'}

    def test_no_temp_file_left(self, tmp_path):
        store = LocalArtifactStore(str(tmp_path))
        store.put_json('assessments/a1/x.json', {'a': 1})
        assert os.listdir(tmp_path / 'assessments' / 'a1') == ['x.json']

    def test_rewrite_same_key(self, tmp_path):
        store = LocalArtifactStore(str(tmp_path))
        first = store.put_json('k.json', {'v': 1})
        second = store.put_json('k.json', {'v': 1})
        assert first == second


class TestR2ArtifactStore:

    @pytest.fixture
    def breaker(self):
        redis = MagicMock()
        redis.get.return_value = None
        return CircuitBreaker('r2', redis, failure_threshold=3, reset_timeout=120)

    def test_uploads_through_breaker(self, breaker):
        client = MagicMock()
        with patch('app.services.circuit_breaker.get_breaker', return_value=breaker):
            path = R2ArtifactStore(client, 'deliverables').put_json('assessments/a1/k.json', {'v': 1})
        assert path == 'r2://deliverables/assessments/a1/k.json'
        kwargs = client.put_object.call_args.kwargs
        assert kwargs['Bucket'] == 'deliverables'
        assert kwargs['Key'] == 'assessments/a1/k.json'
        assert kwargs['ContentType'] == 'application/json'
        assert json.loads(kwargs['Body']) == {'v': 1}

    def test_upload_error_propagates(self, breaker):
        client = MagicMock()
        client.put_object.side_effect = OSError('network')
        with patch('app.services.circuit_breaker.get_breaker', return_value=breaker):
            with pytest.raises(OSError):
                R2ArtifactStore(client, 'deliverables').put_json('k.json', {})

    def test_open_breaker_blocks_upload(self, breaker):
        client = MagicMock()
        with patch('app.services.circuit_breaker.get_breaker', return_value=breaker), \
                patch.object(CircuitBreaker, 'state', new='open'):
            with pytest.raises(CircuitOpenError):
                R2ArtifactStore(client, 'deliverables').put_json('k.json', {})
        client.put_object.assert_not_called()


class TestGetArtifactStore:

    def test_local_when_r2_missing(self):
        with patch('app.extensions.r2_client', None):
            assert isinstance(get_artifact_store(), LocalArtifactStore)

    def test_r2_when_configured(self):
        with patch('app.extensions.r2_client', MagicMock()), \
                patch('app.services.artifacts.R2_BUCKET_NAME', 'deliverables'):
            store = get_artifact_store()
        assert isinstance(store, R2ArtifactStore)
        assert store.bucket == 'deliverables'
