"""
Tests for the integration core and its two entry points.
"""

import logging

import numpy as np
import pytest

from ibsode.exceptions import (
    ConfigurationError,
    GrowthRateError,
    LatticeInputError,
    NumericalDegeneracyError,
    UnsupportedModelError,
)
from ibsode.growth_rates import GrowthRates, IBSModel
from ibsode.optics import sigs_from_sige
from ibsode.simulators import (
    BeamHistory,
    BeamState,
    EvolutionMonitor,
    IBSIntegrator,
    IntegrationConfig,
    ProgressMonitor,
    StopReason,
    ThresholdPolicy,
    evolve_fixed_steps,
    evolve_to_equilibrium,
)

STUB_MODEL = 99


class RecordingMonitor(EvolutionMonitor):
    """Monitor that records every callback."""

    def __init__(self):
        self.events = []

    def on_start(self, config, equilibrium, rates, step_budget):
        self.events.append(("start", step_budget))

    def on_step(self, step, state, rates, dt):
        self.events.append(("step", step, dt))

    def on_complete(self, result):
        self.events.append(("complete", result.steps))

    def on_error(self, error):
        self.events.append(("error", type(error).__name__))

    def names(self):
        return [event[0] for event in self.events]


def equilibrium_state(equilibrium, ex_scale=1.0):
    return BeamState(t=0.0, ex=ex_scale * equilibrium.ex0, ey=equilibrium.ey0_coupled,
                     sigs=equilibrium.sigs_inf, sige=equilibrium.sige0)


class TestAdaptiveMode:
    """Test evolve_to_equilibrium."""

    @pytest.mark.parametrize("scheme", ["der", "rlx"])
    def test_equilibrium_converges_in_one_step(self, lattice, twiss, rf, equilibrium, zero_registry, scheme):
        """Test that a beam at equilibrium without IBS converges after one step."""
        result = evolve_to_equilibrium(
            lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
            scheme=scheme, registry=zero_registry,
        )
        assert result.converged
        assert result.stop_reason == StopReason.CONVERGED
        assert result.steps == 1
        assert len(result.history) == 2
        assert result.final_state.ex == pytest.approx(equilibrium.ex0)

    def test_constant_growth_equilibrium(self, lattice, twiss, rf, equilibrium, stub_registry):
        """Test convergence to ex0 / (1 - tau_x aex) with constant growth rates."""
        rates = GrowthRates(aes=0.1 / equilibrium.tau_s, aex=0.1 / equilibrium.tau_x, aey=0.0)
        result = evolve_to_equilibrium(
            lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
            registry=stub_registry(rates),
        )
        assert result.converged
        assert 1 <= result.steps <= result.step_budget
        final = result.final_state
        assert final.ex == pytest.approx(equilibrium.ex0 / 0.9, rel=1e-3)
        assert final.sige == pytest.approx(equilibrium.sige0 / 0.9, rel=1e-3)
        assert final.sigs == pytest.approx(
            sigs_from_sige(final.sige, lattice.gamma, lattice.gammatr, equilibrium.omega_s)
        )

    def test_time_strictly_increasing(self, lattice, twiss, rf, equilibrium, stub_registry):
        """Test strictly increasing time and equal series lengths."""
        rates = GrowthRates(aes=0.05 / equilibrium.tau_s, aex=0.2 / equilibrium.tau_x, aey=0.1 / equilibrium.tau_y)
        result = evolve_to_equilibrium(
            lattice, twiss, rf, equilibrium_state(equilibrium, 3.0), STUB_MODEL, 1e10,
            scheme="rlx", registry=stub_registry(rates),
        )
        history = result.history
        assert np.all(np.diff(history.t) > 0)
        assert len(history.t) == len(history.ex) == len(history.sigs) == len(history.sige2) == result.steps + 1

    def test_step_budget_exhausted(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test that an unconverged run stops on its budget and reports it."""
        config = IntegrationConfig(
            model=STUB_MODEL, particle_number=1e10,
            stopping=ThresholdPolicy(threshold=1e-6, max_steps=2),
        )
        result = IBSIntegrator(config, registry=zero_registry).run(
            lattice, twiss, rf, equilibrium_state(equilibrium, 10.0)
        )
        assert not result.converged
        assert result.stop_reason == StopReason.STEP_BUDGET
        assert result.steps == result.step_budget == 2
        assert len(result.history) == 3

    def test_real_model(self, header, twiss_columns, equilibrium, beam):
        """Test an adaptive run with the Nagaitsev model from raw header and columns."""
        ex, ey, sigs, sige = beam
        result = evolve_to_equilibrium(
            header, twiss_columns, ([400], [2.0]),
            BeamState(t=0.0, ex=ex, ey=ey, sigs=sigs, sige=sige),
            IBSModel.NAGAITSEV, 1e10, coupling_percentage=1, threshold=1e-3,
        )
        assert 1 <= result.steps <= result.step_budget <= 10000
        assert len(result.history) == result.steps + 1
        assert np.all(np.diff(result.history.t) > 0)
        assert result.rates.is_finite()


class TestFixedMode:
    """Test evolve_fixed_steps."""

    @pytest.mark.parametrize("nsteps", [1, 5, 20])
    def test_length(self, lattice, twiss, rf, equilibrium, zero_registry, nsteps):
        """Test that N steps give N + 1 states even at equilibrium."""
        result = evolve_fixed_steps(
            lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
            nsteps=nsteps, stepsize=1e-4, registry=zero_registry,
        )
        assert len(result.history) == nsteps + 1
        assert result.steps == nsteps
        assert result.stop_reason == StopReason.STEP_COUNT
        assert not result.converged
        np.testing.assert_allclose(np.diff(result.history.t), 1e-4)

    def test_halving_guard_persists(self, lattice, twiss, rf, equilibrium, stub_registry):
        """Test that tau_x aex >= 1 halves the relaxation step at every step."""
        rates = GrowthRates(aes=0.0, aex=2.0 / equilibrium.tau_x, aey=0.0)
        result = evolve_fixed_steps(
            lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
            nsteps=3, stepsize=1e-3, scheme="rlx", registry=stub_registry(rates),
        )
        np.testing.assert_allclose(np.diff(result.history.t), [5e-4, 2.5e-4, 1.25e-4])
        assert np.all(result.history.ex > 0)

    def test_derivative_ignores_guard(self, lattice, twiss, rf, equilibrium, stub_registry):
        """Test that the derivative scheme keeps the caller's step."""
        rates = GrowthRates(aes=0.0, aex=2.0 / equilibrium.tau_x, aey=0.0)
        result = evolve_fixed_steps(
            lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
            nsteps=3, stepsize=1e-4, scheme="der", registry=stub_registry(rates),
        )
        np.testing.assert_allclose(np.diff(result.history.t), 1e-4)

    def test_real_model(self, lattice, twiss, rf, beam):
        """Test a short fixed run with the MAD-X model."""
        ex, ey, sigs, sige = beam
        result = evolve_fixed_steps(
            lattice, twiss, rf, BeamState(t=0.0, ex=ex, ey=ey, sigs=sigs, sige=sige),
            IBSModel.MADX, 1e10, nsteps=3, stepsize=1e-4, coupling_percentage=1,
        )
        assert len(result.history) == 4
        assert np.all(np.isfinite(result.to_dataframe().to_numpy()))


class TestAllModels:
    """Test every built-in model through both schemes and both stopping policies."""

    @pytest.mark.parametrize("scheme", ["der", "rlx"])
    @pytest.mark.parametrize("model", list(IBSModel))
    @pytest.mark.parametrize("adaptive", [True, False], ids=["adaptive", "fixed"])
    def test_model_runs(self, lattice, twiss, rf, beam, model, scheme, adaptive):
        """Test that a run yields a consistent history of physical states."""
        if adaptive:
            config = IntegrationConfig(
                model=model, particle_number=1e10, coupling_percentage=1, scheme=scheme,
                stopping=ThresholdPolicy(threshold=1e-3, max_steps=200),
            )
        else:
            config = IntegrationConfig.fixed(model=model, particle_number=1e10, nsteps=3, stepsize=1e-4,
                                             coupling_percentage=1, scheme=scheme)
        ex, ey, sigs, sige = beam
        result = IBSIntegrator(config).run(lattice, twiss, rf, BeamState(t=0.0, ex=ex, ey=ey, sigs=sigs, sige=sige))

        assert 1 <= result.steps <= result.step_budget
        assert len(result.history) == result.steps + 1
        assert np.all(np.diff(result.history.t) > 0)
        assert result.rates.is_finite()
        frame = result.to_dataframe()
        assert np.all(np.isfinite(frame.to_numpy()))
        assert np.all(frame[["ex", "ey", "sigs", "sige"]].to_numpy() > 0)
        if not adaptive:
            assert result.steps == 3


class TestCoupling:
    """Test the coupling percentage clamp end to end."""

    def run(self, lattice, twiss, rf, equilibrium, registry, percentage):
        state = BeamState(t=0.0, ex=2 * equilibrium.ex0, ey=1e-3 * equilibrium.ex0,
                          sigs=equilibrium.sigs_inf, sige=equilibrium.sige0)
        return evolve_fixed_steps(
            lattice, twiss, rf, state, STUB_MODEL, 1e10, nsteps=4, stepsize=1e-4,
            coupling_percentage=percentage, scheme="rlx", registry=registry,
        )

    def test_out_of_range_means_no_coupling(self, lattice, twiss, rf, equilibrium, stub_registry):
        """Test that 150 and -5 behave exactly like 0."""
        registry = stub_registry(GrowthRates(aes=1.0, aex=2.0, aey=3.0))
        reference = self.run(lattice, twiss, rf, equilibrium, registry, 0)
        for percentage in (150, -5):
            other = self.run(lattice, twiss, rf, equilibrium, registry, percentage)
            np.testing.assert_array_equal(other.history.ey, reference.history.ey)
            np.testing.assert_array_equal(other.history.ex, reference.history.ex)

    def test_coupling_changes_vertical(self, lattice, twiss, rf, equilibrium, stub_registry):
        """Test that a valid coupling raises the vertical target."""
        registry = stub_registry(GrowthRates(aes=1.0, aex=2.0, aey=3.0))
        uncoupled = self.run(lattice, twiss, rf, equilibrium, registry, 0)
        coupled = self.run(lattice, twiss, rf, equilibrium, registry, 50)
        assert coupled.history.ey[-1] > uncoupled.history.ey[-1]
        assert coupled.equilibrium.ey0_coupled == pytest.approx(0.5 * coupled.equilibrium.ex0)


class TestInitialState:
    """Test how the run is seeded."""

    def test_history_extended_in_place(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test that a caller's history is the result history."""
        history = BeamHistory(equilibrium_state(equilibrium))
        result = evolve_fixed_steps(
            lattice, twiss, rf, history, STUB_MODEL, 1e10, nsteps=2, stepsize=1e-4, registry=zero_registry,
        )
        assert result.history is history
        assert len(history) == 3

    def test_history_must_hold_only_seed(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test that a history with several states is rejected."""
        history = BeamHistory(equilibrium_state(equilibrium))
        history.append(BeamState(t=1.0, ex=1e-8, ey=1e-10, sigs=1e-2, sige=1e-3))
        with pytest.raises(ConfigurationError, match="exactly one"):
            evolve_fixed_steps(
                lattice, twiss, rf, history, STUB_MODEL, 1e10, nsteps=2, stepsize=1e-4, registry=zero_registry,
            )

    def test_energy_spread_matched(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test that a seed without energy spread gets the spread matched to its bunch length."""
        state = BeamState(t=0.0, ex=equilibrium.ex0, ey=equilibrium.ey0_coupled, sigs=equilibrium.sigs_inf)
        result = evolve_fixed_steps(
            lattice, twiss, rf, state, STUB_MODEL, 1e10, nsteps=1, stepsize=1e-4, registry=zero_registry,
        )
        assert result.history.seed.sige == pytest.approx(equilibrium.sige0)
        assert result.history.seed.sige2 == pytest.approx(equilibrium.sige0_squared)

    def test_history_without_energy_spread(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test that a history seeded without energy spread is matched and extended in place."""
        history = BeamHistory(BeamState(t=0.0, ex=equilibrium.ex0, ey=equilibrium.ey0_coupled,
                                        sigs=equilibrium.sigs_inf))
        result = evolve_fixed_steps(
            lattice, twiss, rf, history, STUB_MODEL, 1e10, nsteps=3, stepsize=1e-4, registry=zero_registry,
        )
        assert result.history is history
        assert len(history) == 4
        assert history.seed.sige == pytest.approx(equilibrium.sige0)
        assert np.all(history.sige > 0)


class TestErrors:
    """Test error propagation."""

    def test_unsupported_model(self, lattice, twiss, rf, equilibrium):
        """Test that an unknown model id fails before integration."""
        monitor = RecordingMonitor()
        with pytest.raises(UnsupportedModelError):
            evolve_to_equilibrium(
                lattice, twiss, rf, equilibrium_state(equilibrium), 14, 1e10, monitors=[monitor],
            )
        assert monitor.names() == ["error"]

    def test_inconsistent_optics(self, lattice, twiss_columns, rf, equilibrium):
        """Test that optics columns of different length raise LatticeInputError."""
        monitor = RecordingMonitor()
        twiss_columns["DX"] = np.zeros(10)
        with pytest.raises(LatticeInputError, match="optics table"):
            evolve_fixed_steps(
                lattice, twiss_columns, rf, equilibrium_state(equilibrium), IBSModel.MADX, 1e10,
                nsteps=1, stepsize=1e-4, monitors=[monitor],
            )
        assert monitor.names() == ["error"]

    def test_invalid_rf(self, lattice, twiss, equilibrium):
        """Test that mismatched RF harmonics and voltages raise ConfigurationError."""
        monitor = RecordingMonitor()
        with pytest.raises(ConfigurationError, match="RF"):
            evolve_fixed_steps(
                lattice, twiss, ([400, 800], [2.0]), equilibrium_state(equilibrium), IBSModel.MADX, 1e10,
                nsteps=1, stepsize=1e-4, monitors=[monitor],
            )
        assert monitor.names() == ["error"]

    def test_step_below_time_resolution(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test that a step too small to advance time raises and reaches the monitors."""
        monitor = RecordingMonitor()
        state = BeamState(t=1e10, ex=equilibrium.ex0, ey=equilibrium.ey0_coupled,
                          sigs=equilibrium.sigs_inf, sige=equilibrium.sige0)
        with pytest.raises(NumericalDegeneracyError, match="does not advance time"):
            evolve_fixed_steps(
                lattice, twiss, rf, state, STUB_MODEL, 1e10, nsteps=2, stepsize=1e-10,
                registry=zero_registry, monitors=[monitor],
            )
        assert monitor.events[-1] == ("error", "NumericalDegeneracyError")

    def test_degenerate_state(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test that a step driving ex negative raises and keeps the accepted states."""
        monitor = RecordingMonitor()
        history = BeamHistory(equilibrium_state(equilibrium, 100.0))
        with pytest.raises(NumericalDegeneracyError):
            evolve_fixed_steps(
                lattice, twiss, rf, history, STUB_MODEL, 1e10, nsteps=3,
                stepsize=10 * equilibrium.tau_x, registry=zero_registry, monitors=[monitor],
            )
        assert len(history) == 1
        assert monitor.events[-1] == ("error", "NumericalDegeneracyError")

    def test_non_finite_rates(self, lattice, twiss, rf, equilibrium, stub_registry):
        """Test that NaN growth rates are surfaced."""
        registry = stub_registry(GrowthRates(aes=float("nan"), aex=0.0, aey=0.0))
        with pytest.raises(GrowthRateError):
            evolve_to_equilibrium(
                lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10, registry=registry,
            )

    def test_non_physical_seed(self, lattice, twiss, rf, zero_registry):
        """Test that a non-positive seed is rejected."""
        state = BeamState(t=0.0, ex=-1e-9, ey=1e-11, sigs=1e-2, sige=1e-3)
        with pytest.raises(NumericalDegeneracyError):
            evolve_fixed_steps(lattice, twiss, rf, state, STUB_MODEL, 1e10, nsteps=1, stepsize=1e-4,
                               registry=zero_registry)


class TestMonitors:
    """Test the monitoring callbacks."""

    def test_callbacks(self, lattice, twiss, rf, equilibrium, zero_registry):
        """Test the order and count of callbacks."""
        monitor = RecordingMonitor()
        result = evolve_fixed_steps(
            lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
            nsteps=4, stepsize=1e-4, registry=zero_registry, monitors=[monitor],
        )
        assert monitor.names() == ["start", "step", "step", "step", "step", "complete"]
        assert monitor.events[0] == ("start", 4)
        assert monitor.events[-1] == ("complete", result.steps)

    def test_no_output_without_monitors(self, lattice, twiss, rf, equilibrium, zero_registry, caplog):
        """Test that a run without monitors logs nothing at INFO level."""
        with caplog.at_level(logging.INFO, logger="ibsode"):
            evolve_fixed_steps(
                lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
                nsteps=2, stepsize=1e-4, registry=zero_registry,
            )
        assert caplog.records == []

    def test_debug_output(self, lattice, twiss, rf, equilibrium, zero_registry, caplog):
        """Test that debug_output attaches a logging ProgressMonitor."""
        config = IntegrationConfig.fixed(model=STUB_MODEL, particle_number=1e10, nsteps=2, stepsize=1e-4,
                                         debug_output=True)
        integrator = IBSIntegrator(config, registry=zero_registry)
        assert any(isinstance(monitor, ProgressMonitor) for monitor in integrator.monitors)

        with caplog.at_level(logging.INFO, logger="ibsode"):
            integrator.run(lattice, twiss, rf, equilibrium_state(equilibrium))
        assert "Tau_rad_x" in caplog.text
        assert "Final ex" in caplog.text

    def test_failing_monitor_does_not_abort(self, lattice, twiss, rf, equilibrium, zero_registry, caplog):
        """Test that monitor errors are logged and the run continues."""

        class Broken(RecordingMonitor):
            def on_step(self, step, state, rates, dt):
                raise RuntimeError("display failed")

        with caplog.at_level(logging.WARNING):
            result = evolve_fixed_steps(
                lattice, twiss, rf, equilibrium_state(equilibrium), STUB_MODEL, 1e10,
                nsteps=2, stepsize=1e-4, registry=zero_registry, monitors=[Broken()],
            )
        assert len(result.history) == 3
        assert "display failed" in caplog.text
