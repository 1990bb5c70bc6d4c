"""
Tests for the profile mutation ledger (toolbelt/profile.py).
"""

import os

import pytest

from toolbelt.profile import (
    MANAGED_BLOCK_END,
    MANAGED_BLOCK_START,
    Alias,
    PathExport,
    Profile,
    SourceCompletion,
    parse_directive,
    path_in_environment,
)


@pytest.fixture
def profile(tmp_path):
    path = tmp_path / ".bashrc"
    path.write_text("# user settings\nexport EDITOR=vim\n")
    return Profile(path)


class TestDirectives:
    """Rendering and parsing."""

    def test_path_export_render(self):
        """PATH exports append to PATH."""
        assert PathExport("/usr/local/go/bin").render() == 'export PATH="$PATH:/usr/local/go/bin"'

    def test_path_export_normalizes(self):
        """Trailing slashes and dot segments do not make a new directive."""
        assert PathExport("/usr/local/go/bin/") == PathExport("/usr/local/go/./bin")

    @pytest.mark.parametrize("line", [
        'export PATH="$PATH:/usr/local/go/bin"',
        "export PATH=$PATH:/usr/local/go/bin",
        'export PATH="${PATH}:/usr/local/go/bin"',
        'export PATH="/usr/local/go/bin:$PATH"',
        '   export PATH="$PATH:/usr/local/go/bin/"  ',
    ])
    def test_equivalent_path_lines(self, line):
        """Different spellings of the same export parse to the same directive."""
        assert parse_directive(line) == PathExport("/usr/local/go/bin")

    def test_alias_round_trip(self):
        """Aliases parse back into their name and invocation."""
        alias = Alias("Recon", 'python3 "/root/Recon/recon.py"')
        assert parse_directive(alias.render()) == alias

    def test_source_line(self):
        """source and . both parse as completion sources."""
        assert parse_directive("source /x/gf-completion.bash") == SourceCompletion("/x/gf-completion.bash")
        assert parse_directive(". /x/gf-completion.bash") == SourceCompletion("/x/gf-completion.bash")

    @pytest.mark.parametrize("line", [
        'source "/Users/Jane Doe/gf-completion.bash"',
        "source '/Users/Jane Doe/gf-completion.bash'",
        '. "/Users/Jane Doe/gf-completion.bash"',
    ])
    def test_quoted_source_line(self, line):
        """Quoted paths keep their spaces."""
        assert parse_directive(line) == SourceCompletion("/Users/Jane Doe/gf-completion.bash")

    def test_source_round_trip(self):
        """Rendered sources parse back to themselves."""
        source = SourceCompletion("/Users/Jane Doe/gf-completion.zsh")
        assert parse_directive(source.render()) == source

    def test_other_lines(self):
        """Anything else is not a directive."""
        assert parse_directive("export EDITOR=vim") is None
        assert parse_directive("") is None

    def test_path_in_environment(self):
        """Segments compare after normalization."""
        env = {"PATH": "/usr/bin:/usr/local/go/bin/"}
        assert path_in_environment("/usr/local/go/bin", env)
        assert not path_in_environment("/opt/bin", env)


class TestAddPath:
    """PATH exports."""

    def test_writes_managed_block(self, profile):
        """New exports land in a managed block after the user's content."""
        env = {"PATH": "/usr/bin"}
        assert profile.add_path("/usr/local/go/bin", environ=env) is True
        assert profile.path.read_text().splitlines() == [
            "# user settings",
            "export EDITOR=vim",
            MANAGED_BLOCK_START,
            'export PATH="$PATH:/usr/local/go/bin"',
            MANAGED_BLOCK_END,
        ]
        assert env["PATH"] == f"/usr/bin{os.pathsep}/usr/local/go/bin"

    def test_already_on_live_path(self, profile):
        """Paths already on PATH are not written."""
        before = profile.path.read_text()
        assert profile.add_path("/usr/local/go/bin", environ={"PATH": "/usr/local/go/bin"}) is False
        assert profile.path.read_text() == before

    def test_equivalent_export_outside_block(self, profile):
        """An equivalent user-written export prevents a new line."""
        profile.path.write_text("export PATH=/usr/local/go/bin:$PATH\n")
        env = {"PATH": "/usr/bin"}
        assert profile.add_path("/usr/local/go/bin/", environ=env) is False
        assert profile.path.read_text() == "export PATH=/usr/local/go/bin:$PATH\n"
        assert "/usr/local/go/bin" in env["PATH"]

    def test_idempotent(self, profile):
        """Adding twice writes once."""
        profile.add_path("/a/bin", environ={"PATH": ""})
        profile.add_path("/a/bin", environ={"PATH": ""})
        assert profile.path.read_text().count('export PATH="$PATH:/a/bin"') == 1

    def test_appends_inside_existing_block(self, profile):
        """Later directives join the existing block."""
        profile.add_path("/a/bin", environ={"PATH": ""})
        profile.add_path("/b/bin", environ={"PATH": ""})
        content = profile.path.read_text()
        assert content.count(MANAGED_BLOCK_START) == 1
        assert content.index("/a/bin") < content.index("/b/bin") < content.index(MANAGED_BLOCK_END)


class TestAddAliasAndSource:
    """Aliases and completion sources."""

    def test_alias_added_once(self, profile):
        """Exact aliases are not duplicated."""
        alias = Alias("Recon", 'python3 "/root/Recon/recon.py"')
        assert profile.add_alias(alias) is True
        assert profile.add_alias(alias) is False
        assert profile.path.read_text().count(alias.render()) == 1

    def test_alias_replaced_in_block(self, profile):
        """A managed alias with a new invocation is replaced in place."""
        profile.add_alias(Alias("Recon", 'python3 "/old/recon.py"'))
        profile.add_alias(Alias("Recon", 'python3 "/new/recon.py"'))
        content = profile.path.read_text()
        assert "/old/recon.py" not in content
        assert content.count("alias Recon=") == 1

    def test_user_alias_outside_block_untouched(self, profile):
        """Install never rewrites lines outside the block."""
        profile.path.write_text("alias Recon='echo mine'\n")
        profile.add_alias(Alias("Recon", 'python3 "/new/recon.py"'))
        lines = profile.path.read_text().splitlines()
        assert lines[0] == "alias Recon='echo mine'"
        assert lines[2] == "alias Recon='python3 \"/new/recon.py\"'"

    def test_source_added_once(self, profile):
        """Completion sources are not duplicated."""
        source = SourceCompletion("/go/pkg/mod/github.com/tomnomnom/gf@v0/gf-completion.bash")
        assert profile.add_source(source) is True
        assert profile.add_source(source) is False

    def test_source_with_spaces_added_once(self, profile):
        """A completion under a home directory with spaces is quoted and found again."""
        source = SourceCompletion("/Users/Jane Doe/go/pkg/mod/github.com/tomnomnom/gf@v0/gf-completion.bash")
        assert profile.add_source(source) is True
        assert profile.add_source(source) is False
        content = profile.path.read_text()
        assert content.count("source ") == 1
        assert f'source "{source.path}"' in content


class TestRemoval:
    """Semantic removal."""

    def test_remove_directives_and_empty_block(self, profile):
        """Removing every managed directive drops the block and restores the file."""
        original = profile.path.read_text()
        profile.add_path("/a/bin", environ={"PATH": ""})
        alias = Alias("Recon", 'python3 "/root/Recon/recon.py"')
        profile.add_alias(alias)

        removed = profile.remove([PathExport("/a/bin"), alias])
        assert len(removed) == 2
        assert profile.path.read_text() == original

    def test_backup_written(self, profile):
        """The previous content is kept in a .bak file."""
        profile.add_path("/a/bin", environ={"PATH": ""})
        before = profile.path.read_text()
        profile.remove([PathExport("/a/bin")])
        assert profile.backup_path.read_text() == before
        assert profile.backup_path.name == ".bashrc.bak"

    def test_removes_equivalent_lines_outside_block(self, profile):
        """Equivalent spellings anywhere in the file are removed."""
        profile.path.write_text("export PATH=$PATH:/a/bin/\nexport EDITOR=vim\n")
        profile.remove([PathExport("/a/bin")])
        assert profile.path.read_text() == "export EDITOR=vim\n"

    def test_nothing_to_remove(self, profile):
        """No match means no write and no backup."""
        assert profile.remove([PathExport("/nope")]) == []
        assert not profile.backup_path.exists()

    def test_remove_matching(self, profile):
        """Predicate removal never sees the block markers."""
        profile.add_source(SourceCompletion("/x/gf-completion.bash"))
        profile.add_path("/a/bin", environ={"PATH": ""})
        seen = []

        def predicate(line):
            seen.append(line)
            return "gf-completion" in line

        assert profile.remove_matching(predicate) == ['source "/x/gf-completion.bash"']
        assert MANAGED_BLOCK_START not in seen
        assert MANAGED_BLOCK_START in profile.path.read_text()

    def test_symlinked_profile_kept(self, tmp_path):
        """Writes go through a symlinked profile."""
        real = tmp_path / "dotfiles" / "bashrc"
        real.parent.mkdir()
        real.write_text("")
        link = tmp_path / ".bashrc"
        link.symlink_to(real)
        Profile(link).add_path("/a/bin", environ={"PATH": ""})
        assert link.is_symlink()
        assert "/a/bin" in real.read_text()
