"""Congestion control: pacer, fixed-rate sender, windowed filter and BBR bandwidth sampling."""