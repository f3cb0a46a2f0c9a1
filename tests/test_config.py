"""Unit tests for render configuration and validation."""

import pytest


def test_runtime_initialized():
    from raymax.core.runtime import is_initialized

    assert is_initialized()


class TestEnums:
    """Tests for IntegratorType and PartitionMode parsing."""

    def test_parse_integrator_names(self):
        """Hyphenated, underscored and alias names map to members."""
        from raymax.core.config import IntegratorType

        assert IntegratorType.parse("ray-trace") is IntegratorType.RAY_TRACE
        assert IntegratorType.parse("path_trace") is IntegratorType.PATH_TRACE
        assert IntegratorType.parse("Whitted") is IntegratorType.RAY_TRACE
        assert IntegratorType.parse(1) is IntegratorType.PATH_TRACE

    def test_parse_unknown_integrator(self):
        from raymax.core.config import IntegratorType

        with pytest.raises(ValueError, match="Unknown integrator"):
            IntegratorType.parse("photon-map")

    def test_parse_partition_modes(self):
        """'lines' is accepted as a synonym for rows."""
        from raymax.core.config import PartitionMode

        assert PartitionMode.parse("tiles") is PartitionMode.TILES
        assert PartitionMode.parse("lines") is PartitionMode.ROWS
        assert PartitionMode.parse("ROWS") is PartitionMode.ROWS

    def test_parse_sampling_modes(self):
        from raymax.core.config import SamplingMode

        assert SamplingMode.parse("adaptive") is SamplingMode.ADAPTIVE
        assert SamplingMode.parse("Jittered") is SamplingMode.STRATIFIED
        assert SamplingMode.parse(0) is SamplingMode.STRATIFIED
        with pytest.raises(ValueError, match="Unknown sampling mode"):
            SamplingMode.parse("sobol")


class TestValidation:
    """Tests for RenderConfig.validate."""

    def test_defaults_are_valid(self):
        from raymax.core.config import RenderConfig

        RenderConfig().validate()

    @pytest.mark.parametrize(
        "option",
        ["samples_per_pixel", "max_depth", "image_width", "image_height", "thread_count", "tile_size"],
    )
    def test_zero_rejected(self, option):
        """Every count must be at least one."""
        from raymax.core.config import ConfigurationError, RenderConfig

        config = RenderConfig().with_options(**{option: 0})
        with pytest.raises(ConfigurationError) as excinfo:
            config.validate()
        assert any(option in p for p in excinfo.value.problems)

    def test_all_problems_reported(self):
        """validate() lists every invalid option at once."""
        from raymax.core.config import ConfigurationError, RenderConfig

        config = RenderConfig(samples_per_pixel=0, thread_count=-1, image_width=0)
        with pytest.raises(ConfigurationError) as excinfo:
            config.validate()
        assert len(excinfo.value.problems) == 3

    def test_configuration_error_is_value_error(self):
        from raymax.core.config import ConfigurationError

        assert issubclass(ConfigurationError, ValueError)

    def test_image_size_limit(self):
        from raymax.core.config import MAX_IMAGE_WIDTH, ConfigurationError, RenderConfig

        with pytest.raises(ConfigurationError, match="exceeds maximum"):
            RenderConfig(image_width=MAX_IMAGE_WIDTH + 1).validate()

    def test_non_integer_rejected(self):
        from raymax.core.config import ConfigurationError, RenderConfig

        with pytest.raises(ConfigurationError):
            RenderConfig(samples_per_pixel=2.5).validate()
        with pytest.raises(ConfigurationError):
            RenderConfig(max_depth=True).validate()

    def test_negative_background_rejected(self):
        from raymax.core.config import ConfigurationError, RenderConfig

        with pytest.raises(ConfigurationError, match="background"):
            RenderConfig(background=(0.0, -1.0, 0.0)).validate()

    def test_rr_start_depth_may_be_zero(self):
        from raymax.core.config import RenderConfig

        RenderConfig(rr_start_depth=0).validate()

    def test_adaptive_options(self):
        """Depth 0 disables subdivision; the threshold may be zero but not negative."""
        from raymax.core.config import MAX_ADAPTIVE_DEPTH, ConfigurationError, RenderConfig, SamplingMode

        RenderConfig(sampling=SamplingMode.ADAPTIVE, adaptive_max_depth=0, adaptive_threshold=0.0).validate()
        RenderConfig(sampling=SamplingMode.ADAPTIVE, adaptive_max_depth=MAX_ADAPTIVE_DEPTH).validate()
        with pytest.raises(ConfigurationError, match="adaptive_max_depth"):
            RenderConfig(adaptive_max_depth=MAX_ADAPTIVE_DEPTH + 1).validate()
        with pytest.raises(ConfigurationError, match="adaptive_max_depth"):
            RenderConfig(adaptive_max_depth=-1).validate()
        with pytest.raises(ConfigurationError, match="adaptive_threshold"):
            RenderConfig(adaptive_threshold=-0.1).validate()
        with pytest.raises(ConfigurationError, match="adaptive_threshold"):
            RenderConfig(adaptive_threshold=float("nan")).validate()
        with pytest.raises(ConfigurationError, match="sampling"):
            RenderConfig(sampling="adaptive").validate()


class TestSerialization:
    """Tests for to_dict/from_dict."""

    def test_from_dict_hyphenated_keys(self):
        from raymax.core.config import IntegratorType, PartitionMode, RenderConfig

        config = RenderConfig.from_dict(
            {
                "integrator": "path-trace",
                "samples-per-pixel": 64,
                "max-depth": 8,
                "image-width": 320,
                "image-height": 240,
                "thread-count": 4,
                "partition-mode": "lines",
            }
        )
        assert config.integrator is IntegratorType.PATH_TRACE
        assert config.samples_per_pixel == 64
        assert config.max_depth == 8
        assert config.thread_count == 4
        assert config.partition_mode is PartitionMode.ROWS
        assert config.aspect_ratio == pytest.approx(4.0 / 3.0)

    def test_to_dict_round_trip(self):
        from raymax.core.config import IntegratorType, RenderConfig

        config = RenderConfig(integrator=IntegratorType.PATH_TRACE, background=(0.1, 0.2, 0.3), sky=True, seed=9)
        data = config.to_dict()
        assert data["integrator"] == "path-trace"
        assert data["samples-per-pixel"] == 1
        assert RenderConfig.from_dict(data) == config

    def test_adaptive_round_trip(self):
        from raymax.core.config import RenderConfig, SamplingMode

        config = RenderConfig.from_dict({"sampling": "adaptive", "adaptive-max-depth": 3, "adaptive-threshold": 1})
        assert config.sampling is SamplingMode.ADAPTIVE
        assert config.adaptive_threshold == 1.0
        data = config.to_dict()
        assert data["sampling"] == "adaptive"
        assert RenderConfig.from_dict(data) == config

    def test_from_dict_unknown_key(self):
        from raymax.core.config import ConfigurationError, RenderConfig

        with pytest.raises(ConfigurationError, match="unknown option"):
            RenderConfig.from_dict({"resolution": [400, 400]})

    def test_from_dict_bad_integrator(self):
        from raymax.core.config import ConfigurationError, RenderConfig

        with pytest.raises(ConfigurationError, match="integrator"):
            RenderConfig.from_dict({"integrator": "bdpt"})

    def test_config_is_immutable(self):
        import dataclasses

        from raymax.core.config import RenderConfig

        config = RenderConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.max_depth = 10
