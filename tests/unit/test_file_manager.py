"""Unit tests for FileManager class."""

import pytest
import json
from pathlib import Path
from datetime import datetime
from unittest.mock import patch

from speak2me.models.session import SessionInfo
from speak2me.storage.file_manager import FileManager


@pytest.mark.unit
class TestFileManager:
    """Test cases for FileManager class."""

    def test_initialization(self, temp_data_dir):
        """Test FileManager initialization."""
        fm = FileManager(temp_data_dir)

        assert fm.data_dir == Path(temp_data_dir)
        assert fm.artifact_dir == Path(temp_data_dir) / "artifact"
        assert fm.logs_dir == Path(temp_data_dir) / "logs"

        # Check directories were created
        assert fm.data_dir.exists()
        assert fm.artifact_dir.exists()
        assert fm.logs_dir.exists()

    def test_initialization_default_path(self):
        """Test FileManager initialization with default path."""
        with patch.object(Path, 'mkdir') as mock_mkdir:
            fm = FileManager()

            assert fm.data_dir == Path("./data")
            assert mock_mkdir.call_count == 3

    def test_new_session_id(self):
        """Test session ID format."""
        session_id = FileManager.new_session_id()

        # YYYYMMDD_HHMMSS_XXXX
        assert len(session_id) == 20
        assert session_id.count("_") == 2
        datetime.strptime(session_id[:15], "%Y%m%d_%H%M%S")

    def test_session_ids_unique(self):
        """Test session IDs differ within the same second."""
        ids = {FileManager.new_session_id() for _ in range(50)}

        assert len(ids) > 1

    def test_artifact_paths(self, temp_data_dir):
        """Test artifact and partial artifact locations."""
        fm = FileManager(temp_data_dir)

        assert fm.artifact_path == fm.artifact_dir / "captured_audio.wav"
        assert fm.partial_artifact_path == fm.artifact_dir / "captured_audio.partial.wav"

    def test_promote_partial_artifact(self, temp_data_dir, sample_audio_chunk):
        """Test the partial file replaces the previous artifact."""
        fm = FileManager(temp_data_dir)
        fm.artifact_path.write_bytes(b"old")
        fm.partial_artifact_path.write_bytes(sample_audio_chunk)

        path = fm.promote_partial_artifact()

        assert path == fm.artifact_path
        assert path.read_bytes() == sample_audio_chunk
        assert not fm.partial_artifact_path.exists()

    def test_remove_artifact(self, temp_data_dir):
        """Test removal deletes artifact, partial file and metadata."""
        fm = FileManager(temp_data_dir)
        fm.artifact_path.write_bytes(b"wav")
        fm.partial_artifact_path.write_bytes(b"partial")
        fm.save_session_info(SessionInfo(
            session_id="20250101_120000_abcd", start_time=datetime.now(),
            duration_seconds=1.0, audio_file="captured_audio.wav",
            file_size_bytes=3, sample_rate=44100, total_chunks=1,
        ))

        fm.remove_artifact()

        assert not fm.artifact_path.exists()
        assert not fm.partial_artifact_path.exists()
        assert fm.load_session_info() is None

    def test_remove_artifact_when_missing(self, temp_data_dir):
        """Test removing a nonexistent artifact is harmless."""
        fm = FileManager(temp_data_dir)

        fm.remove_artifact()

        assert not fm.artifact_path.exists()

    def test_save_and_load_session_info(self, temp_data_dir):
        """Test saving and loading session information."""
        fm = FileManager(temp_data_dir)
        start_time = datetime.now()
        session_info = SessionInfo(
            session_id="20250101_120000_abcd",
            start_time=start_time,
            duration_seconds=10.5,
            audio_file="captured_audio.wav",
            file_size_bytes=926144,
            sample_rate=44100,
            total_chunks=226,
        )

        info_path = fm.save_session_info(session_info)

        with open(info_path, 'r') as f:
            saved_data = json.load(f)
        assert saved_data["session_id"] == "20250101_120000_abcd"
        assert saved_data["start_time"] == start_time.isoformat()

        loaded = fm.load_session_info()
        assert loaded == session_info

    def test_load_session_info_missing(self, temp_data_dir):
        """Test loading when no session info exists."""
        fm = FileManager(temp_data_dir)

        assert fm.load_session_info() is None

    def test_load_session_info_corrupt(self, temp_data_dir):
        """Test corrupt metadata is reported as missing."""
        fm = FileManager(temp_data_dir)
        (fm.artifact_dir / FileManager.SESSION_INFO_NAME).write_text("{not json")

        assert fm.load_session_info() is None
