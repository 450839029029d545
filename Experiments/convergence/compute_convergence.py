"""Convergence study of the HDG diffusion solver.

Example:
    mpiexec -n 4 python Experiments/convergence/compute_convergence.py \
        -p_0 1 -p_n 3 -h_0 0 -h_n 5 --problem sinusoidal -ksp_monitor
"""

import sys

from HDG import main
from utils import get_data_dir


# Results go to data/convergence/ unless --output-dir is given
argv = sys.argv[1:]
if not any(arg.startswith("--output-dir") for arg in argv):
    argv += ["--output-dir", str(get_data_dir("convergence"))]

sys.exit(main(argv))
