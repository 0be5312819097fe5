"""
Strategy runtime.

`StrategyRuntime` owns one run of a constant-risk trade tool.  The host
drives it through callbacks, one at a time:

- `on_start()` validates the configuration, subscribes instruments,
  sizes and submits the order(s) and picks the exit policies.
- `on_bar()` hands closed bars to the exit policies of that period.
- `on_message()` applies broker outcomes to the run state.
- `on_stop()` reports the totals and discards the state.

A configuration or resolution problem at start is logged and leaves the
run idle: nothing is submitted and later callbacks do nothing.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set
import pandas as pd

from ..config.schema import Config, ConfigurationError
from ..data.instruments import Instrument, from_string
from ..execution.host import SubmissionError, TradingHost
from ..execution.models import Account, Direction, Message, OrderCommand, Tick
from ..risk.conversion import InstrumentNotFoundError, resolve_conversion_instrument
from ..risk.sizing import PositionSizer
from .exit_policies import (
    BREAK_EVEN_PERIOD,
    ExitPolicy,
    PendingSizeRefresh,
    PriceLevelTrigger,
    RunContext,
    ScaleOutDual,
    TargetTrigger,
    TrendReversal,
)
from .lifecycle import RunState, handle_message
from .submission import LabelGenerator, OrderSubmitter, Pips, Price, RewardRatio, pips_between


logger = logging.getLogger(__name__)


class StrategyRuntime:
    """Run one configured strategy variant against a trading host."""

    def __init__(self, config: Config, host: TradingHost, labels: Optional[LabelGenerator] = None) -> None:
        self.config = config
        self.host = host
        self.labels = labels or LabelGenerator()
        self.state: Optional[RunState] = None
        self.policies: List[ExitPolicy] = []
        self.instrument: Optional[Instrument] = None
        self.direction: Optional[Direction] = None
        self.active = False

    @property
    def periods(self) -> Set[str]:
        """Bar periods the runtime wants to be called for."""
        return {BREAK_EVEN_PERIOD} | {policy.period for policy in self.policies}

    def on_start(self) -> RunState:
        self.state = RunState()
        self.policies = []
        self.active = False
        cfg = self.config.strategy

        self.instrument = from_string(cfg.instrument)
        if self.instrument is None:
            logger.error("Unknown instrument: %s", cfg.instrument)
            return self.state
        account_currency = self.host.get_account().currency

        logger.info("Strategy starting. Subscribing instruments...")
        self._subscribe(account_currency)

        try:
            cfg.validate()
        except ConfigurationError as exc:
            logger.error("%s", exc)
            return self.state
        self.direction = cfg.direction

        try:
            self.policies = self._submit(account_currency)
        except (ConfigurationError, InstrumentNotFoundError, SubmissionError) as exc:
            logger.error("Order not submitted: %s", exc)
            return self.state
        self.active = True
        return self.state

    def _subscribe(self, account_currency: str) -> None:
        instruments = {self.instrument}
        conversion = resolve_conversion_instrument(self.instrument, account_currency)
        if conversion is not None:
            instruments.add(conversion)
        else:
            logger.warning("No conversion pair from %s to %s", self.instrument.primary, account_currency)
        self.host.subscribe(instruments)

    def _submitter(self, account_currency: str, max_position_size: float) -> OrderSubmitter:
        sizer = PositionSizer(self.host, account_currency, max_position_size)
        return OrderSubmitter(self.host, sizer, self.labels, self.config.risk.slippage_pips)

    def _submit(self, account_currency: str) -> List[ExitPolicy]:
        cfg = self.config.strategy
        risk = self.config.risk
        variant = cfg.strategy
        command = OrderCommand.for_direction(self.direction, pending=(variant == 'stop_entry'))
        currency_risk = float(cfg.constant_currency_risk)

        if variant == 'scale_out':
            return self._submit_scale_out(account_currency, command, currency_risk)

        submitter = self._submitter(account_currency, risk.max_position_size)
        policies: List[ExitPolicy] = []

        if variant == 'market':
            order = submitter.submit(
                self.instrument, command, currency_risk,
                Pips(cfg.stop_loss_pips), RewardRatio(cfg.reward_risk_ratio),
            )
            if cfg.move_sl_break_even:
                policies.append(TargetTrigger(currency_risk * cfg.reward_risk_ratio, risk.break_even_fraction))

        elif variant == 'sl_from_tp':
            tick = self._tick()
            tp_pips = pips_between(cfg.take_profit_price, tick.price_for(self.direction), self.instrument)
            order = submitter.submit(
                self.instrument, command, currency_risk,
                Pips(tp_pips), Price(cfg.take_profit_price),
            )
            # risk:reward 1:1, the target profit equals the risk
            if cfg.move_sl_break_even:
                policies.append(TargetTrigger(currency_risk, risk.break_even_fraction))

        elif variant == 'stop_entry':
            order = submitter.submit(
                self.instrument, command, currency_risk,
                Pips(cfg.stop_loss_pips), RewardRatio(cfg.reward_risk_ratio),
                entry_price=cfg.entry_stop_price,
            )
            logger.info("Stop entry: %s", cfg.entry_stop_price)
            if cfg.move_sl_break_even:
                policies.append(TargetTrigger(currency_risk * cfg.reward_risk_ratio, risk.break_even_fraction))
            policies.append(PendingSizeRefresh(submitter.sizer, cfg.stop_loss_pips, currency_risk))

        else:
            tick = self._tick()
            trigger = PriceLevelTrigger.one_to_one(tick.price_for(self.direction), cfg.stop_loss_price)
            order = submitter.submit(self.instrument, command, currency_risk, Price(cfg.stop_loss_price))
            if cfg.move_sl_break_even:
                logger.info("Break even trigger: %s", trigger.trigger_price)
                policies.append(trigger)
            policies.append(TrendReversal(cfg.period))

        self.state.track('main', order.label)
        return policies

    def _submit_scale_out(self, account_currency: str, command: OrderCommand, currency_risk: float) -> List[ExitPolicy]:
        cfg = self.config.strategy
        max_size = self.config.risk.max_position_size
        scale_out_active = cfg.target2_price > 0.0
        if scale_out_active:
            # the position is split across two orders
            currency_risk /= 2
            max_size /= 2
        submitter = self._submitter(account_currency, max_size)

        order1 = submitter.submit(
            self.instrument, command, currency_risk,
            Price(cfg.stop_loss_price), Price(cfg.target1_price), slot_tag='ORDER1',
        )
        self.state.track('order1', order1.label)
        if scale_out_active:
            try:
                order2 = submitter.submit(
                    self.instrument, command, currency_risk,
                    Price(cfg.stop_loss_price), Price(cfg.target2_price), slot_tag='ORDER2',
                )
            except SubmissionError as exc:
                # order 1 is live and stays managed on its own
                logger.error("Order 2 not submitted, managing order 1 only: %s", exc)
            else:
                self.state.track('order2', order2.label)

        if cfg.break_even_trigger_price > 0.0:
            return [ScaleOutDual(cfg.break_even_trigger_price)]
        return []

    def _tick(self) -> Tick:
        return self.host.get_latest_tick(self.instrument)

    def on_tick(self, instrument: Instrument, tick: Tick) -> None:
        pass

    def on_bar(self, instrument: Instrument, period: str, ask_bar: pd.Series, bid_bar: pd.Series) -> None:
        if not self.active or self.state is None:
            return
        if instrument != self.instrument or not self.state.any_open:
            return
        ctx = RunContext(self.host, self.state, self.instrument, self.direction)
        for policy in self.policies:
            if policy.period != period:
                continue
            try:
                policy.on_bar(ctx, ask_bar, bid_bar)
            except (InstrumentNotFoundError, SubmissionError) as exc:
                logger.error("%s skipped: %s", type(policy).__name__, exc)

    def on_message(self, message: Message) -> None:
        if self.state is None:
            return
        handle_message(self.state, message)

    def on_account(self, account: Account) -> None:
        logger.debug("Account update: %s", account)

    def on_stop(self) -> Optional[RunState]:
        """Log the run totals and hand back the final state."""
        state = self.state
        if state is not None:
            logger.info(
                "Strategy stopped. Profit: %s Commission: %s Net Profit: %s",
                state.total_profit,
                state.total_commission,
                state.net_profit,
            )
        self.state = None
        self.active = False
        return state
