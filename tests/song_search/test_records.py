import pytest

from song_search.errors import LoadError
from song_search.records import Song, embedding_text, load_many, load_songs, normalize_query


def test_embedding_text_flattens_newlines_and_lowercases():
    song = Song("Coldplay", "Yellow", "Parachutes", "Look at the stars\nLook how they Shine\n")
    assert embedding_text(song) == "coldplay yellow parachutes look at the stars look how they shine"


def test_embedding_text_is_pure():
    song = Song("Ed Sheeran", "Perfect", "÷", "I found a love\r\nfor me")
    assert embedding_text(song) == embedding_text(Song(*[song.artist, song.title, song.album, song.lyric]))
    assert "\n" not in embedding_text(song) and "\r" not in embedding_text(song)


@pytest.mark.parametrize(
    "other",
    [
        Song("Coldplay", "Yellow", "Parachutes (Live)", "la la"),
        Song("Coldplay", "Yellow Submarine", "Parachutes", "la la"),
        Song("Coldplays", "Yellow", "Parachutes", "la la"),
        Song("Coldplay", "Yellow", "Parachutes", "la la la"),
    ],
)
def test_embedding_text_differs_when_any_field_differs(other):
    base = Song("Coldplay", "Yellow", "Parachutes", "la la")
    assert embedding_text(base) != embedding_text(other)


def test_key_is_case_sensitive_and_ignores_lyric():
    a = Song("Coldplay", "Yellow", "Parachutes", "one")
    b = Song("Coldplay", "Yellow", "Parachutes", "two")
    c = Song("coldplay", "Yellow", "Parachutes", "one")
    assert a.key == b.key == ("Coldplay", "Yellow", "Parachutes")
    assert a.key != c.key


def test_str_omits_empty_album():
    assert str(Song("Selena Gomez", "Rare", "")) == "Rare by Selena Gomez"
    assert str(Song("Selena Gomez", "Rare", "Rare")) == "Rare by Selena Gomez / Rare"


def test_normalize_query():
    assert normalize_query("  Songs About LOVE \n") == "songs about love"
    assert normalize_query("") == ""


def test_load_songs_reads_header_columns(tmp_path):
    path = tmp_path / "songs.csv"
    path.write_text(
        'Index,Artist,Title,Album,Year,Lyric\n'
        '1,Coldplay,Yellow,Parachutes,2000,"Look at the stars\nLook how they shine"\n'
        '2,Coldplay,Fix You,X&Y,2005,When you try your best\n',
        encoding="utf-8",
    )
    songs = load_songs(path)
    assert songs == [
        Song("Coldplay", "Yellow", "Parachutes", "Look at the stars\nLook how they shine"),
        Song("Coldplay", "Fix You", "X&Y", "When you try your best"),
    ]


def test_load_songs_requires_exact_header_names(tmp_path):
    path = tmp_path / "songs.csv"
    path.write_text("artist,title,album,lyric\nA,B,C,D\n", encoding="utf-8")
    with pytest.raises(LoadError, match="missing column"):
        load_songs(path)


def test_load_songs_short_row_is_an_error(tmp_path):
    path = tmp_path / "songs.csv"
    path.write_text("Artist,Title,Album,Lyric\nA,B\n", encoding="utf-8")
    with pytest.raises(LoadError, match="too few fields"):
        load_songs(path)


def test_load_songs_long_row_is_an_error(tmp_path):
    path = tmp_path / "songs.csv"
    path.write_text("Artist,Title,Album,Lyric\nA,B,C,D,EXTRA,MORE\n", encoding="utf-8")
    with pytest.raises(LoadError, match="more fields than the header"):
        load_songs(path)


def test_load_songs_short_row_with_extra_header_column(tmp_path):
    path = tmp_path / "songs.csv"
    path.write_text("Artist,Title,Album,Lyric,Year\nA,B,C,D\n", encoding="utf-8")
    with pytest.raises(LoadError, match="too few fields"):
        load_songs(path)


def test_load_songs_skips_utf8_bom(tmp_path):
    path = tmp_path / "songs.csv"
    path.write_bytes(b"\xef\xbb\xbfArtist,Title,Album,Lyric\nColdplay,Yellow,Parachutes,stars\n")
    assert load_songs(path) == [Song("Coldplay", "Yellow", "Parachutes", "stars")]


def test_load_songs_missing_file(tmp_path):
    with pytest.raises(LoadError):
        load_songs(tmp_path / "nope.csv")


def test_load_many_concatenates_in_order(tmp_path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    first.write_text("Artist,Title,Album,Lyric\nA,1,X,l\n", encoding="utf-8")
    second.write_text("Artist,Title,Album,Lyric\nB,2,Y,l\nB,3,Y,l\n", encoding="utf-8")
    assert [s.title for s in load_many([first, second])] == ["1", "2", "3"]
