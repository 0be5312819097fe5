"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.

The strategy section is resolved once when a run starts and is never
changed afterwards.  `StrategyConfig.validate()` performs the start-up
checks; a failed check means the run must not submit anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Dict, Any
import yaml

from ..execution.models import Direction
from ..utils.timeutils import PERIODS


STRATEGY_VARIANTS = ('market', 'sl_from_tp', 'stop_entry', 'scale_out', 'ha_wave')


class ConfigurationError(ValueError):
    """Raised when the strategy parameters cannot produce a valid order."""


@dataclass
class StrategyConfig:
    """Parameters of one strategy run.

    Attributes
    ----------
    strategy : str
        Variant to run, one of ``STRATEGY_VARIANTS``.
    instrument : str
        Currency pair in ``"EUR/USD"`` notation.
    period : str
        Bar period used by the trend exit (``M1`` ... ``D1``).
    buy, sell : bool
        Order side.  Exactly one must be set.
    constant_currency_risk : float
        Amount of account currency lost when the stop-loss is hit.
    stop_loss_pips : float
        Stop-loss distance for the ``market`` and ``stop_entry`` variants.
    stop_loss_price : float
        Absolute stop-loss for the ``scale_out`` and ``ha_wave`` variants.
    take_profit_price : float
        Absolute take-profit for the ``sl_from_tp`` variant.
    reward_risk_ratio : float
        Use 2 for a risk:reward of 1:2.  Ignored by ``sl_from_tp``, which
        always trades 1:1.
    entry_stop_price : float
        Entry price of the pending order for the ``stop_entry`` variant.
    move_sl_break_even : bool
        Enable the break-even stop-loss move.
    break_even_trigger_price : float
        Scale-out break-even trigger; 0 disables it.
    target1_price, target2_price : float
        Scale-out take-profit levels.  With ``target2_price == 0`` the
        whole position is closed at target 1.
    """

    strategy: str = 'market'
    instrument: str = 'EUR/USD'
    period: str = 'D1'
    buy: bool = False
    sell: bool = False
    constant_currency_risk: float = 10.0
    stop_loss_pips: float = 50.0
    stop_loss_price: float = 0.0
    take_profit_price: float = 0.0
    reward_risk_ratio: float = 2.0
    entry_stop_price: float = 0.0
    move_sl_break_even: bool = False
    break_even_trigger_price: float = 0.0
    target1_price: float = 0.0
    target2_price: float = 0.0

    @property
    def direction(self) -> Direction:
        if self.buy == self.sell:
            raise ConfigurationError("Invalid order side, please check only BUY or SELL")
        return Direction.LONG if self.buy else Direction.SHORT

    def validate(self) -> None:
        """Check the parameters required by the selected variant.

        Raises
        ------
        ConfigurationError
            On an unknown variant, an ambiguous side, or a missing price.
        """
        if self.strategy not in STRATEGY_VARIANTS:
            raise ConfigurationError(f"Unknown strategy variant: {self.strategy}")
        if self.period not in PERIODS:
            raise ConfigurationError(f"Unsupported period: {self.period}")
        if self.buy == self.sell:
            raise ConfigurationError("Invalid order side, please check only BUY or SELL")
        if self.constant_currency_risk <= 0:
            raise ConfigurationError(f"Invalid constant currency risk: {self.constant_currency_risk}")
        if self.strategy in ('market', 'stop_entry') and self.stop_loss_pips <= 0:
            raise ConfigurationError(f"Invalid stop loss pips: {self.stop_loss_pips}")
        if self.strategy == 'stop_entry' and self.entry_stop_price <= 0:
            raise ConfigurationError("Invalid stop order entry price")
        if self.strategy == 'sl_from_tp' and self.take_profit_price <= 0:
            raise ConfigurationError(f"Invalid take profit price: {self.take_profit_price}")
        if self.strategy in ('scale_out', 'ha_wave') and self.stop_loss_price <= 0:
            raise ConfigurationError(f"Invalid stop loss price: {self.stop_loss_price}")
        if self.strategy == 'scale_out' and self.target1_price <= 0:
            raise ConfigurationError(f"Invalid target 1 price: {self.target1_price}")
        if self.reward_risk_ratio <= 0:
            raise ConfigurationError(f"Invalid reward risk ratio: {self.reward_risk_ratio}")


@dataclass
class RiskConfig:
    """Safety limits applied to every order.

    Attributes
    ----------
    max_position_size : float
        Largest amount (millions of units) a single order may carry.
        Protects against typos in the risk amount.
    slippage_pips : float
        Slippage tolerance sent with every order.
    break_even_fraction : float
        Fraction of the target profit that arms the break-even move.
    """

    max_position_size: float = 0.05
    slippage_pips: float = 5.0
    break_even_fraction: float = 0.9


@dataclass
class CostsConfig:
    """Trading costs charged by the paper host.

    Attributes
    ----------
    commission_per_lot : float
        Commission in account currency per standard lot (100 000 units)
        closed.
    """

    commission_per_lot: float = 0.0


@dataclass
class PaperConfig:
    """Account settings of the in-memory paper host."""

    account_currency: str = 'USD'


@dataclass
class MT5Config:
    """Holds parameters required to connect to a MetaTrader 5 terminal.

    Attributes
    ----------
    login : int
        Account login number.
    password : str
        Password for the account.
    server : str
        Broker server name (e.g. ``Bidget-MT5-Live``).
    path : str
        File system path to the MetaTrader 5 terminal executable
        (`terminal64.exe`).
    magic : int
        Expert magic number stamped on every request.
    symbol_suffix : str
        Broker-specific suffix appended to symbols (e.g. ``.m``).
    """

    login: int = 0
    password: str = ""
    server: str = ""
    path: str = ""
    magic: int = 20140101
    symbol_suffix: str = ""


@dataclass
class RunnerConfig:
    """Polling loop settings.

    Attributes
    ----------
    poll_seconds : float
        Delay between two polls of the host.
    stop_when_flat : bool
        End the run once every submitted order is closed or rejected.
    report_dir : str
        Directory receiving the run report; empty disables the report.
    """

    poll_seconds: float = 5.0
    stop_when_flat: bool = True
    report_dir: str = "results"


@dataclass
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    timezone : str
        IANA timezone name used to localise bar timestamps.
    """

    timezone: str = "UTC"


@dataclass
class Config:
    """Root configuration for the trade tools."""

    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    costs: CostsConfig = field(default_factory=CostsConfig)
    paper: PaperConfig = field(default_factory=PaperConfig)
    mt5: MT5Config = field(default_factory=MT5Config)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    mode: str = "paper"
    data: DataConfig = field(default_factory=DataConfig)


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        the defaults defined in the dataclasses.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}

    merged = _merge_dict(asdict(Config()), raw)

    strategy_cfg = StrategyConfig(**merged['strategy'])
    strategy_cfg.instrument = str(strategy_cfg.instrument).upper()
    strategy_cfg.period = str(strategy_cfg.period).upper()
    strategy_cfg.strategy = str(strategy_cfg.strategy).lower()

    return Config(
        strategy=strategy_cfg,
        risk=RiskConfig(**merged['risk']),
        costs=CostsConfig(**merged['costs']),
        paper=PaperConfig(**merged['paper']),
        mt5=MT5Config(**merged['mt5']),
        runner=RunnerConfig(**merged['runner']),
        mode=str(merged.get('mode', 'paper')).lower(),
        data=DataConfig(**merged['data']),
    )
