"""
Tests for engine configuration.
"""

from trade_reconstruction.config import ReconstructionConfig


class TestReconstructionConfig:
    """Test defaults and environment overrides."""

    def test_defaults(self):
        config = ReconstructionConfig()

        assert config.timeline.merge_window_ms == 60_000
        assert config.timeline.id_separator == ","
        assert config.position.size_tolerance == 1e-9
        assert config.position.default_contract_value == 1.0
        assert config.funding.funding_bill_types == ["FUNDING_FEE", "8"]

    def test_instances_do_not_share_state(self):
        first = ReconstructionConfig()
        first.funding.funding_bill_types.append("X")

        assert ReconstructionConfig().funding.funding_bill_types == ["FUNDING_FEE", "8"]

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TRADE_RECON_MERGE_WINDOW_MS", "30000")
        monkeypatch.setenv("TRADE_RECON_SIZE_TOLERANCE", "1e-6")
        monkeypatch.setenv("TRADE_RECON_DEFAULT_CONTRACT_VALUE", "0.01")
        monkeypatch.setenv("TRADE_RECON_FUNDING_TYPES", "FUNDING_FEE, 8 ,custom")

        config = ReconstructionConfig.from_env()

        assert config.timeline.merge_window_ms == 30_000
        assert config.position.size_tolerance == 1e-6
        assert config.position.default_contract_value == 0.01
        assert config.funding.funding_bill_types == ["FUNDING_FEE", "8", "custom"]

    def test_malformed_env_falls_back(self, monkeypatch):
        monkeypatch.setenv("TRADE_RECON_MERGE_WINDOW_MS", "soon")
        monkeypatch.setenv("TRADE_RECON_SIZE_TOLERANCE", "")
        monkeypatch.setenv("TRADE_RECON_FUNDING_TYPES", " , ")

        config = ReconstructionConfig.from_env()

        assert config.timeline.merge_window_ms == 60_000
        assert config.position.size_tolerance == 1e-9
        assert config.funding.funding_bill_types == ["FUNDING_FEE", "8"]
