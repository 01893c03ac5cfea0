'''Development code for an N-body integration package
Kozai-Lidov cycles of a hot-Jupiter progenitor with tides and spin evolution'''

import numpy as np
import strophe as st
from strophe.tools import com_of_pair

OUTPUT_INTERVAL = 100.0 * st.YEAR       # time between samples
N_OUTPUTS = 1000
PRINT_EVERY = 100
OUTPUT_FILE = "kozai_cycles.csv"


def outer_orbit(sim):
    """Perturber orbit about the star-planet centre of mass."""
    star, planet, perturber = (sim.particle(i) for i in sim.indices)
    com = com_of_pair(star, planet)
    return st.cartesian_to_orbit(sim.G * (com.m + perturber.m), perturber, com)


def main(integrator="ias15"):
    sim = st.kozai_system(integrator=integrator)
    sim.summary()

    times = np.arange(N_OUTPUTS) * OUTPUT_INTERVAL
    rows = []
    with st.utils.Timer("Kozai integration"):
        for k, t in enumerate(times):
            row = sim.record([t])[0]
            outer = outer_orbit(sim)
            row['perturber_a_outer'] = outer.a
            row['perturber_inc_outer'] = outer.inc
            rows.append(row)
            if k % PRINT_EVERY == 0:
                print(f"t={t / st.YEAR:f}\t a1={row['planet_a']:.6f}\t "
                      f"e1={row['planet_e']:.5f}\t "
                      f"o1={np.degrees(row['planet_Omega_obliquity']):0.5f}")

    st.Trajectory(times, rows).to_csv(OUTPUT_FILE)
    print(f"Wrote {len(rows)} samples to {OUTPUT_FILE}")


if __name__ == "__main__":
    main()
