import pytest

from frame_removal.paths import (
    PathError, collect_image_paths, content_type_for, extension_for, output_dir_for,
    output_path_for, processed_image_key, public_url
)


def test_processed_image_key():
    assert processed_image_key('g1', 'a1', 'JPEG') == 'artworks/g1/a1_processed.jpg'
    assert processed_image_key('g1', 'a1', 'PNG') == 'artworks/g1/a1_processed.png'
    assert processed_image_key('g1', 'a1') == 'artworks/g1/a1_processed.jpg'


def test_processed_image_key_requires_ids():
    with pytest.raises(PathError):
        processed_image_key('', 'a1')
    with pytest.raises(PathError):
        processed_image_key('g1', '')


def test_extension_and_content_type():
    assert extension_for('webp') == '.webp'
    assert extension_for(None) == '.png'
    assert content_type_for('JPEG') == 'image/jpeg'
    assert content_type_for('XYZ') == 'application/octet-stream'


def test_public_url():
    assert public_url('https://cdn.example.com/', '/artworks/g/a.jpg') == 'https://cdn.example.com/artworks/g/a.jpg'


def test_output_dir_for(tmp_path):
    image = tmp_path / "painting.jpg"
    image.write_bytes(b"x")

    assert output_dir_for(image) == tmp_path / "frames_removed"
    assert output_dir_for(tmp_path).is_dir()


def test_output_path_for(tmp_path):
    assert output_path_for(tmp_path / "scan.jpeg", tmp_path, 'PNG') == tmp_path / "scan.png"


def test_collect_image_paths(tmp_path):
    (tmp_path / "b.PNG").write_bytes(b"x")
    (tmp_path / "a.jpg").write_bytes(b"x")
    (tmp_path / "notes.txt").write_text("skip")
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "c.jpg").write_bytes(b"x")
    single = nested / "c.jpg"

    found = collect_image_paths([tmp_path, single, tmp_path / "missing.jpg"])

    assert [p.name for p in found] == ['a.jpg', 'b.PNG', 'c.jpg']
