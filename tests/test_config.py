"""Tests for the option records and the YAML option loader."""

import pytest

from lamfbp import FBPOptions, InvalidFilterKind, ReconstructionConfig, load_options


def test_defaults():
    options = FBPOptions()
    assert options.filter == 'ram-lak'
    assert options.filter_value == 1.0
    assert options.split == (1, 1, 1)
    assert options.split_sub == (1, 1, 1)
    assert options.padding == 0.0
    assert options.gpu == ()
    assert options.keep_on_gpu is None
    assert options.determine_weights
    assert not options.only_filter_sinogram


def test_values_are_normalized():
    options = FBPOptions(filter='Shepp-Logan', split=4, split_sub=[1, 2, 1], padding='Replicate', gpu=[0, 1])
    assert options.filter == 'shepp-logan'
    assert options.split == (1, 1, 4)
    assert options.split_sub == (1, 2, 1)
    assert options.padding == 'replicate'
    assert options.gpu == (0, 1)


@pytest.mark.parametrize('changes, error', [
    ({'filter': 'butterworth'}, InvalidFilterKind),
    ({'filter_value': 0.0}, ValueError),
    ({'filter_value': 1.5}, ValueError),
    ({'verbose': 3}, ValueError),
    ({'padding': 'wrap'}, ValueError),
    ({'split': (1, 0, 1)}, ValueError),
    ({'split_sub': (1, 1)}, ValueError),
    ({'deformation_fields': [0, 0]}, ValueError),
])
def test_invalid_options(changes, error):
    with pytest.raises(error):
        FBPOptions(**changes)


def test_replace_revalidates():
    options = FBPOptions(filter='hann')
    assert options.replace(filter_value=0.5).filter == 'hann'
    with pytest.raises(InvalidFilterKind):
        options.replace(filter='nope')


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match='Unknown FBP options'):
        FBPOptions.from_dict({'filter': 'hann', 'filtre_value': 0.5})


def test_load_options(tmp_path):
    path = tmp_path / 'fbp.yaml'
    path.write_text(
        "filter: hamming\n"
        "filter_value: 0.8\n"
        "padding: symmetric\n"
        "split: [2, 2, 1]\n"
        "verbose: 0\n",
        encoding='utf-8',
    )
    options = load_options(str(path))
    assert options.filter == 'hamming'
    assert options.filter_value == 0.8
    assert options.padding == 'symmetric'
    assert options.split == (2, 2, 1)
    assert options.verbose == 0
    assert options.determine_weights


def test_load_empty_options(tmp_path):
    path = tmp_path / 'empty.yaml'
    path.write_text('', encoding='utf-8')
    assert load_options(str(path)).filter == 'ram-lak'


def test_load_options_requires_mapping(tmp_path):
    path = tmp_path / 'list.yaml'
    path.write_text('- hann\n- 0.5\n', encoding='utf-8')
    with pytest.raises(ValueError):
        load_options(str(path))


def test_reconstruction_config():
    config = ReconstructionConfig(128, 16, 180, 100, 90, 16)
    assert config.vol_shape == (100, 90, 16)
    assert config.vol_elements == 100 * 90 * 16
    assert config.with_angles(90).n_angles == 90
    assert config.with_angles(90).vol_shape == config.vol_shape
    with pytest.raises(ValueError):
        ReconstructionConfig(128, 0, 180, 100, 90, 16)


if __name__ == '__main__':
    pytest.main([str(__file__.replace('\\', '/')), '-v'])
