from specdiv.bootstrap.bootstrap import bootstrap, resample, std_error
