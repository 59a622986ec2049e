"""Tests for the link.d store."""

import json
import os

import pytest

from al.errors import ConflictError, NotFoundError, StoreIOError, ValidationError
from al.links import (
    LinkStore,
    LinkType,
    detect_link_type,
    get_link_content_path,
    sanitize_link_name,
)
from tests.helpers import mode_of, write_file


@pytest.fixture
def store(env):
    return LinkStore(env)


class TestLinkNames:
    @pytest.mark.parametrize("name", ["vimrc", "my.conf", "a-b_c", "X1", "  padded  "])
    def test_accepts_safe_names(self, name):
        assert sanitize_link_name(name) == name.strip()

    @pytest.mark.parametrize("name", ["", "   ", ".", "..", "..hidden", "a/b", "with space", "semi;colon"])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(ValidationError):
            sanitize_link_name(name)


class TestDetectLinkType:
    def test_existing_file_and_dir(self, env, tmp_path):
        f = write_file(tmp_path / "f.txt", "x")
        d = tmp_path / "d"
        d.mkdir()
        assert detect_link_type(str(f), env) is LinkType.FILE
        assert detect_link_type(str(d), env) is LinkType.DIR
        # stat wins over syntax for existing paths
        assert detect_link_type(str(d) + "/", env) is LinkType.DIR

    def test_missing_path_uses_trailing_separator(self, env, tmp_path):
        missing = str(tmp_path / "nope")
        assert detect_link_type(missing, env) is LinkType.FILE
        assert detect_link_type(missing + "/", env) is LinkType.DIR
        assert detect_link_type(missing + "/  ", env) is LinkType.DIR

    def test_missing_path_is_stable(self, env):
        for _ in range(3):
            assert detect_link_type("~/.config/tool/", env) is LinkType.DIR
            assert detect_link_type("~/.toolrc", env) is LinkType.FILE


class TestAddLink:
    def test_file_example(self, store, env, tmp_path):
        vimrc = write_file(tmp_path / "x" / ".vimrc", "abc")

        entry = store.add_link("vimrc", str(vimrc))

        content = env.link_dir / "vimrc" / "content"
        assert entry.name == "vimrc"
        assert entry.manifest.type is LinkType.FILE
        assert content.read_text() == "abc"
        assert vimrc.is_symlink()
        assert os.readlink(vimrc) == str(content)
        assert vimrc.read_text() == "abc"

    def test_manifest_on_disk(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "1")
        store.add_link("rc", str(target), LinkType.FILE, "git", "brew")

        data = json.loads((env.link_dir / "rc" / ".manifest.json").read_text())
        assert data == {
            "user_path": str(target),
            "type": "file",
            "package_id": "git",
            "package_provider": "brew",
        }

    def test_manifest_omits_empty_association(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "1")
        store.add_link("rc", str(target))
        data = json.loads((env.link_dir / "rc" / ".manifest.json").read_text())
        assert data == {"user_path": str(target), "type": "file"}

    def test_directory_copy_keeps_tree_and_modes(self, store, env, tmp_path):
        src = tmp_path / "x" / "conf"
        write_file(src / "a.txt", "A", mode=0o600)
        write_file(src / "sub" / "b.sh", "B", mode=0o755)

        store.add_link("conf", str(src))

        content = env.link_dir / "conf" / "content"
        assert (content / "a.txt").read_text() == "A"
        assert (content / "sub" / "b.sh").read_text() == "B"
        assert mode_of(content / "a.txt") == 0o600
        assert mode_of(content / "sub" / "b.sh") == 0o755
        assert src.is_symlink()
        assert (src / "sub" / "b.sh").read_text() == "B"

    def test_missing_file_gets_placeholder(self, store, env):
        entry = store.add_link("newrc", "~/deep/dir/.newrc")

        user_path = env.home / "deep" / "dir" / ".newrc"
        assert entry.manifest.user_path == str(user_path)
        assert user_path.is_symlink()
        assert user_path.read_text() == ""
        assert (env.link_dir / "newrc" / "content").is_file()

    def test_missing_dir_gets_placeholder(self, store, env):
        entry = store.add_link("tooldir", "~/.config/tool/")

        user_path = env.home / ".config" / "tool"
        assert entry.manifest.type is LinkType.DIR
        assert user_path.is_symlink()
        assert user_path.is_dir()
        assert list(user_path.iterdir()) == []

    def test_relative_path_resolves_against_cwd(self, store, env):
        write_file(env.cwd / "local.conf", "L")
        entry = store.add_link("local", "local.conf")
        assert entry.manifest.user_path == str(env.cwd / "local.conf")
        assert (env.cwd / "local.conf").is_symlink()

    def test_name_collision(self, store, tmp_path):
        store.add_link("dup", str(write_file(tmp_path / "x" / "one", "1")))
        other = write_file(tmp_path / "x" / "two", "2")

        with pytest.raises(ConflictError):
            store.add_link("dup", str(other))
        assert not other.is_symlink()
        assert other.read_text() == "2"

    def test_invalid_name_touches_nothing(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "1")
        with pytest.raises(ValidationError):
            store.add_link("../evil", str(target))
        assert not target.is_symlink()
        assert not env.link_dir.exists()

    def test_type_mismatch_rejected(self, store, tmp_path):
        d = tmp_path / "x" / "dir"
        d.mkdir(parents=True)
        with pytest.raises(ValidationError):
            store.add_link("d", str(d), LinkType.FILE)
        assert not d.is_symlink()

    def test_already_managed_path_rejected(self, store, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "1")
        store.add_link("first", str(target))
        with pytest.raises(ConflictError):
            store.add_link("second", str(target))

    def test_path_inside_root_rejected(self, store, env):
        write_file(env.root / "config.yaml", "{}")
        with pytest.raises(ValidationError):
            store.add_link("cfg", str(env.root / "config.yaml"))

    def test_symlink_failure_rolls_back(self, store, env, tmp_path, monkeypatch):
        target = write_file(tmp_path / "x" / "rc", "keep me", mode=0o640)

        def boom(src, dst):
            raise OSError("symlink not permitted")

        monkeypatch.setattr("al.links.os.symlink", boom)
        with pytest.raises(StoreIOError):
            store.add_link("rc", str(target))

        assert not (env.link_dir / "rc").exists()
        assert not target.is_symlink()
        assert target.read_text() == "keep me"
        assert mode_of(target) == 0o640

    def test_copy_failure_rolls_back(self, store, env, tmp_path, monkeypatch):
        target = write_file(tmp_path / "x" / "rc", "data")

        def boom(src, dest):
            raise OSError("disk full")

        monkeypatch.setattr("al.links.copy_node", boom)
        with pytest.raises(StoreIOError):
            store.add_link("rc", str(target))
        assert not (env.link_dir / "rc").exists()
        assert target.read_text() == "data"


class TestRemoveLink:
    def test_file_round_trip(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / ".vimrc", "set nu\n", mode=0o600)
        entry = store.add_link("vimrc", str(target))
        entry_dir = env.link_dir / "vimrc"

        store.remove_link(entry, entry_dir, purge=False)

        assert not target.is_symlink()
        assert target.read_text() == "set nu\n"
        assert mode_of(target) == 0o600
        assert not entry_dir.exists()

    def test_directory_round_trip(self, store, env, tmp_path):
        src = tmp_path / "x" / "conf"
        write_file(src / "a.txt", "A", mode=0o600)
        write_file(src / "sub" / "b.sh", "B", mode=0o755)
        src.chmod(0o700)
        entry = store.add_link("conf", str(src))
        assert mode_of(env.link_dir / "conf" / "content") == 0o700

        store.remove_link(entry, env.link_dir / "conf")

        assert src.is_dir() and not src.is_symlink()
        assert mode_of(src) == 0o700
        assert (src / "a.txt").read_text() == "A"
        assert mode_of(src / "sub" / "b.sh") == 0o755
        assert not (env.link_dir / "conf").exists()
        assert not any(p.name.startswith(".conf.al-restore-") for p in src.parent.iterdir())

    def test_restores_edits_made_through_symlink(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "old")
        entry = store.add_link("rc", str(target))
        target.write_text("new")

        store.remove_link(entry, env.link_dir / "rc")
        assert target.read_text() == "new"

    def test_purge_leaves_nothing(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "bye")
        entry = store.add_link("rc", str(target))

        store.remove_link(entry, env.link_dir / "rc", purge=True)

        assert not os.path.lexists(target)
        assert not (env.link_dir / "rc").exists()

    def test_purge_directory_leaves_nothing(self, store, env, tmp_path):
        src = tmp_path / "x" / "conf"
        write_file(src / "a.txt", "A")
        write_file(src / "sub" / "b.sh", "B", mode=0o755)
        entry = store.add_link("conf", str(src))

        store.remove_link(entry, env.link_dir / "conf", purge=True)

        assert not os.path.lexists(src)
        assert not (env.link_dir / "conf").exists()
        assert list(src.parent.iterdir()) == []

    def test_tolerates_missing_symlink(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "abc")
        entry = store.add_link("rc", str(target))
        target.unlink()

        store.remove_link(entry, env.link_dir / "rc")
        assert target.read_text() == "abc"

    def test_recreates_missing_parent(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "nested" / "rc", "abc")
        entry = store.add_link("rc", str(target))
        target.unlink()
        target.parent.rmdir()

        store.remove_link(entry, env.link_dir / "rc")
        assert target.read_text() == "abc"

    def test_refuses_to_overwrite_real_file(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "abc")
        entry = store.add_link("rc", str(target))
        target.unlink()
        target.write_text("user replaced it")

        with pytest.raises(ConflictError):
            store.remove_link(entry, env.link_dir / "rc")
        assert target.read_text() == "user replaced it"
        assert (env.link_dir / "rc").exists()


class TestQueries:
    def test_list_and_filter(self, store, tmp_path):
        store.add_link("b", str(write_file(tmp_path / "x" / "b", "")), package_id="git", package_provider="brew")
        store.add_link("a", str(write_file(tmp_path / "x" / "a", "")))
        store.add_link("c", str(write_file(tmp_path / "x" / "c", "")), package_id="git", package_provider="mas")

        assert [e.name for e in store.list_links()] == ["a", "b", "c"]
        assert [e.name for e in store.list_links("git", "brew")] == ["b"]
        assert [e.name for e in store.links_by_package("git", "mas")] == ["c"]
        # one empty field means no filtering
        assert len(store.list_links("git", "")) == 3

    def test_list_without_root(self, store):
        assert store.list_links() == []

    def test_list_skips_broken_entries(self, store, env, tmp_path):
        store.add_link("good", str(write_file(tmp_path / "x" / "good", "")))
        (env.link_dir / "nomanifest").mkdir()
        bad = env.link_dir / "badjson"
        bad.mkdir()
        (bad / ".manifest.json").write_text("{not json")
        (env.link_dir / ".hidden").mkdir()

        assert [e.name for e in store.list_links()] == ["good"]

    def test_get_link_by_name(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "")
        store.add_link("rc", str(target))

        entry, entry_dir = store.get_link_by_name("rc")
        assert entry.manifest.user_path == str(target)
        assert entry_dir == env.link_dir / "rc"
        assert get_link_content_path(entry_dir) == entry_dir / "content"

    def test_get_link_by_name_missing(self, store):
        assert store.get_link_by_name("ghost") == (None, None)

    def test_find_link_by_user_path(self, store, env):
        write_file(env.home / ".gitconfig", "g")
        store.add_link("gitconfig", "~/.gitconfig", package_id="git", package_provider="brew")
        write_file(env.cwd / "local.conf", "l")
        store.add_link("local", "local.conf")

        entry, entry_dir = store.find_link_by_user_path("~/.gitconfig")
        assert entry.name == "gitconfig"
        assert entry_dir == env.link_dir / "gitconfig"
        assert store.find_link_by_user_path(str(env.home / ".gitconfig"))[0].name == "gitconfig"
        assert store.find_link_by_user_path("./local.conf")[0].name == "local"

    def test_find_link_by_user_path_with_package_filter(self, store, env):
        write_file(env.home / ".gitconfig", "g")
        store.add_link("gitconfig", "~/.gitconfig", package_id="git", package_provider="brew")

        assert store.find_link_by_user_path("~/.gitconfig", "git", "brew")[0].name == "gitconfig"
        assert store.find_link_by_user_path("~/.gitconfig", "git", "mas") == (None, None)
        assert store.find_link_by_user_path("~/.nothing") == (None, None)

    def test_clear_association_keeps_link(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "z")
        store.add_link("rc", str(target), package_id="git", package_provider="brew")

        store.clear_link_package_association(env.link_dir / "rc")

        entry, _ = store.get_link_by_name("rc")
        assert entry.manifest.package_id == ""
        assert entry.manifest.package_provider == ""
        assert target.is_symlink()
        assert target.read_text() == "z"
        data = json.loads((env.link_dir / "rc" / ".manifest.json").read_text())
        assert "package_id" not in data


class TestHealth:
    def test_check_reports_missing_symlink(self, store, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "z")
        store.add_link("rc", str(target))
        assert store.check_links() == []

        target.unlink()
        problems = store.check_links()
        assert [(p.name, p.problem) for p in problems] == [("rc", "symlink missing")]

    def test_repair_recreates_symlink(self, store, env, tmp_path):
        target = write_file(tmp_path / "x" / "rc", "z")
        store.add_link("rc", str(target))
        target.unlink()

        assert store.repair_link("rc") is True
        assert os.readlink(target) == str(env.link_dir / "rc" / "content")
        assert store.repair_link("rc") is False

    def test_repair_unknown_link(self, store):
        with pytest.raises(NotFoundError):
            store.repair_link("ghost")
