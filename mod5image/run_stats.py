# run_stats.py
import time
import json
from collections import defaultdict, Counter


class RunStats:
    """Counters, phase timers and discard bookkeeping for one curve."""

    def __init__(self, curve_id=None):
        self.curve_id = curve_id
        self.start_time = time.time()
        # Phase timers
        self.phase_times = defaultdict(float)
        self._phase_start = {}
        # Counters
        self.counters = Counter()
        self.counters.update({
            'primes_requested': 0,
            'primes_bad': 0,
            'primes_below_cutoff': 0,
            'samples_used': 0,
            'torsion_counts_mod_p': 0,
            'lines_enumerated': 0,
            'inversion_retries': 0,
            'inversion_failures': 0,
            'reconstruction_failures': 0,
            'points_reconstructed': 0,
            'points_verified': 0,
        })
        # Discard reasons and examples
        self.discard_reasons = Counter()
        self.discard_examples = defaultdict(list)
        # Candidate set after each stage, in order
        self.stage_candidates = []

    # ---------------- Merging ----------------
    def merge(self, other):
        """Merge another RunStats object into this one (batch totals)."""
        if not isinstance(other, RunStats):
            return
        for phase, t in other.phase_times.items():
            self.phase_times[phase] += t
        self.counters.update(other.counters)
        self.discard_reasons.update(other.discard_reasons)
        for reason, examples in other.discard_examples.items():
            needed = 5 - len(self.discard_examples[reason])
            if needed > 0:
                self.discard_examples[reason].extend(examples[:needed])

    # ---------------- Timing ----------------
    def start_phase(self, name):
        self._phase_start[name] = time.time()

    def end_phase(self, name):
        if name in self._phase_start:
            dt = time.time() - self._phase_start.pop(name)
            self.phase_times[name] += dt

    # ---------------- Counters ----------------
    def incr(self, key, n=1):
        self.counters[key] += n

    def record_discard(self, reason, example=None):
        self.discard_reasons[reason] += 1
        if example is not None and len(self.discard_examples[reason]) < 5:
            self.discard_examples[reason].append(example)

    def record_stage(self, stage, candidates):
        self.stage_candidates.append((stage, sorted(candidates)))

    # ---------------- Summary ----------------
    def summary(self):
        return {
            'curve_id': self.curve_id,
            'elapsed': time.time() - self.start_time,
            'phase_times': dict(self.phase_times),
            'counters': dict(self.counters),
            'discard_reasons': dict(self.discard_reasons),
            'discard_examples': {k: [str(e) for e in v] for k, v in self.discard_examples.items()},
            'stages': [[stage, cands] for stage, cands in self.stage_candidates],
        }

    def summary_string(self):
        s = self.summary()
        lines = [f"Curve: {s['curve_id']}",
                 f"Total time: {s['elapsed']:.2f}s",
                 "\nPhases (s):"]
        if not s['phase_times']:
            lines.append("  (No phases recorded)")
        else:
            for phase, t in sorted(s['phase_times'].items(), key=lambda x: x[1], reverse=True):
                lines.append(f"  {phase:<25}: {t:.2f}s")
        lines.append("\nCounters:")
        for counter, n in sorted(s['counters'].items()):
            lines.append(f"  {counter:<30}: {n}")
        lines.append("\nCandidates by stage:")
        for stage, cands in s['stages']:
            lines.append(f"  {stage:<25}: {', '.join(cands) if cands else '(none)'}")
        lines.append("Discard Reasons (Top 5):")
        top_discards = sorted(s['discard_reasons'].items(), key=lambda x: x[1], reverse=True)[:5]
        if not top_discards:
            lines.append("  (None)")
        else:
            for reason, count in top_discards:
                lines.append(f"  {reason:<30}: {count}")
        lines.append("-" * 32)
        return "\n".join(lines)

    def to_json(self, path):
        def serializer(o):
            if isinstance(o, set):
                return sorted(o)
            return str(o)
        with open(path, 'w') as fh:
            json.dump(self.summary(), fh, indent=2, default=serializer)
